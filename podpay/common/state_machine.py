"""Payment session transitions enforced by the session state machine."""

from podpay.payments.errors import InvalidTransition
from podpay.payments.models import SessionStatus


# IDLE -> POLLING is the resume path after a process restart.
ALLOWED_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.IDLE: {SessionStatus.SUBMITTING, SessionStatus.POLLING},
    SessionStatus.SUBMITTING: {SessionStatus.AWAITING_RETURN, SessionStatus.FAILED},
    SessionStatus.AWAITING_RETURN: {SessionStatus.POLLING},
    SessionStatus.POLLING: {SessionStatus.SUCCEEDED, SessionStatus.FAILED},
    SessionStatus.SUCCEEDED: {SessionStatus.IDLE},
    SessionStatus.FAILED: {SessionStatus.AWAITING_RETURN, SessionStatus.SUBMITTING, SessionStatus.IDLE},
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    current, new = SessionStatus(current), SessionStatus(new)
    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Invalid transition: {current.value} -> {new.value}")
