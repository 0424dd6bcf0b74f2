"""Exception taxonomy for the payment session flow."""


class PaymentSessionError(Exception):
    """Base class for every error raised by the payment session flow."""


class SessionValidationError(PaymentSessionError, ValueError):
    """Session input rejected before anything reaches the network."""


class InvalidTransition(PaymentSessionError, ValueError):
    """Operation not allowed in the session's current state."""


class CreationError(PaymentSessionError):
    """Gateway rejected, timed out, or returned an unusable creation response."""


class TransientPollError(PaymentSessionError):
    """A single status query failed; the next scheduled tick retries it."""


class PollerAlreadyActive(PaymentSessionError):
    """Another poller is already running for the same external reference."""
