"""
Booking state machine.

TRANSITIONS is the single source of truth for which role may move a
booking from one status to another. Anything not listed is illegal.
"""

from typing import Dict, FrozenSet, Union

from ..core.enums import RoleName
from ..models.booking import BookingStatus

RoleLike = Union[RoleName, str]
StatusLike = Union[BookingStatus, str]

TRANSITIONS: Dict[BookingStatus, Dict[BookingStatus, FrozenSet[RoleName]]] = {
    BookingStatus.PENDING: {
        BookingStatus.ASSIGNED: frozenset({RoleName.ADMIN, RoleName.SYSTEM}),
        BookingStatus.CANCELLED: frozenset({RoleName.USER, RoleName.ADMIN}),
    },
    BookingStatus.ASSIGNED: {
        BookingStatus.IN_PROGRESS: frozenset({RoleName.TECHNICIAN}),
        BookingStatus.CANCELLED: frozenset({RoleName.USER, RoleName.ADMIN}),
    },
    BookingStatus.IN_PROGRESS: {
        BookingStatus.COMPLETED: frozenset({RoleName.TECHNICIAN, RoleName.ADMIN}),
        BookingStatus.CANCELLED: frozenset({RoleName.ADMIN}),
    },
    BookingStatus.COMPLETED: {},
    BookingStatus.CANCELLED: {},
}

# Statuses from which a role may cancel or reschedule a booking.
CANCELLABLE_BY: Dict[RoleName, FrozenSet[BookingStatus]] = {
    RoleName.USER: frozenset({BookingStatus.PENDING, BookingStatus.ASSIGNED}),
    RoleName.ADMIN: frozenset(
        {BookingStatus.PENDING, BookingStatus.ASSIGNED, BookingStatus.IN_PROGRESS}
    ),
}


def _status(value: StatusLike) -> BookingStatus:
    return value if isinstance(value, BookingStatus) else BookingStatus(value)


def _role(value: RoleLike) -> RoleName:
    return value if isinstance(value, RoleName) else RoleName(value)


def is_valid_status(value: str) -> bool:
    return value in {s.value for s in BookingStatus}


def can_transition(current: StatusLike, target: StatusLike, role: RoleLike) -> bool:
    try:
        allowed = TRANSITIONS[_status(current)].get(_status(target), frozenset())
        return _role(role) in allowed
    except ValueError:
        return False


def sources_for(target: StatusLike, role: RoleLike) -> FrozenSet[BookingStatus]:
    """Every status from which ``role`` may legally reach ``target``."""
    target_status = _status(target)
    actor = _role(role)
    return frozenset(
        source for source, edges in TRANSITIONS.items() if actor in edges.get(target_status, ())
    )


def eligible_statuses(role: RoleLike) -> FrozenSet[BookingStatus]:
    """Statuses a role may cancel or reschedule from; empty for other roles."""
    return CANCELLABLE_BY.get(_role(role), frozenset())


def is_terminal(status: StatusLike) -> bool:
    return not TRANSITIONS[_status(status)]
