from __future__ import annotations

from services.errors import StaffingValidationError


TIME_OFF_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "draft": ("active", "cancelled"),
    "active": ("cancelled",),
    "cancelled": (),
}

COVERAGE_REQUEST_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "open": ("filled", "cancelled"),
    "filled": ("open", "cancelled"),
    "cancelled": (),
}

COVERAGE_SHIFT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "active": ("cancelled",),
    "cancelled": (),
}

SUB_ASSIGNMENT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "active": ("cancelled",),
    "cancelled": (),
}

_TABLES = {
    "time_off": TIME_OFF_TRANSITIONS,
    "coverage_request": COVERAGE_REQUEST_TRANSITIONS,
    "coverage_request_shift": COVERAGE_SHIFT_TRANSITIONS,
    "sub_assignment": SUB_ASSIGNMENT_TRANSITIONS,
}


def can_transition(kind: str, current: str, new: str) -> bool:
    if current == new:
        return True
    table = _TABLES[kind]
    return new in table.get(current, ())


def ensure_transition(kind: str, current: str, new: str) -> None:
    if not can_transition(kind, current, new):
        raise StaffingValidationError(
            f"Invalid {kind.replace('_', ' ')} status transition: {current} -> {new}",
            code="INVALID_STATUS_TRANSITION",
        )
