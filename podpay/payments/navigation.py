"""Navigators: how a checkout URL leaves the payment session machine."""

import webbrowser

from podpay.common.logging import logger
from podpay.payments.models import HandoffMode


def open_in_browser(url: str) -> HandoffMode:
    """Open checkout in the local browser; this process keeps polling."""

    if not webbrowser.open(url):
        logger.warning("no browser available, open checkout manually url=%s", url)
    return HandoffMode.SECONDARY


def print_and_detach(url: str) -> HandoffMode:
    """Hand checkout to the operator and let the process exit."""

    print(f"Complete the payment at: {url}")
    return HandoffMode.FULL_PAGE


class RedirectCapture:
    """Records handed-off URLs so an HTTP layer can return them as redirects."""

    def __init__(self, mode: HandoffMode = HandoffMode.SECONDARY) -> None:
        self.mode = mode
        self.urls: list[str] = []

    @property
    def last_url(self) -> str | None:
        return self.urls[-1] if self.urls else None

    def __call__(self, url: str) -> HandoffMode:
        self.urls.append(url)
        return self.mode
