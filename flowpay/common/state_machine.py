"""Order status transitions enforced on every store write."""

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

TERMINAL_STATUSES = frozenset({APPROVED, REJECTED})

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {APPROVED, REJECTED},
    APPROVED: set(),
    REJECTED: set(),
}

# Gateway status taxonomy: 1 approved, 2 rejected, 3 pending, 4 annulled.
GATEWAY_STATUS_CODES: dict[str, str] = {
    "1": APPROVED,
    "2": REJECTED,
    "3": PENDING,
    "4": REJECTED,
}

STATUS_TO_GATEWAY_CODE: dict[str, str] = {APPROVED: "1", REJECTED: "2", PENDING: "3"}


class InvalidTransitionError(ValueError):
    """Raised when a transition is not allowed by the state machine."""


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Invalid transition: {current} -> {new}")


def resolve_transition(current: str, new: str) -> str | None:
    """Return the status to write, or None when the write is a no-op.

    Repeating the current status and moving a terminal order back to pending
    are both no-ops. Anything else must be a legal transition.
    """

    if new == current:
        return None
    if current in TERMINAL_STATUSES and new == PENDING:
        return None
    validate_transition(current, new)
    return new


def status_from_gateway(code: object) -> str | None:
    """Map a gateway status code to an order status; None when unknown."""

    return GATEWAY_STATUS_CODES.get(str(code).strip()) if code is not None else None
