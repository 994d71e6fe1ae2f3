from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.database import is_duplicate_key_error
from models.coverage_request import CoverageRequestShift
from models.sub_assignment import SubAssignment
from models.substitute_contact import SubContactShiftOverride, SubstituteContact
from models.time_slot import TimeSlot
from services.calendar import shift_key
from services.errors import NotFoundError, StaffingValidationError


logger = logging.getLogger(__name__)


NOT_CONTACTED = "not_contacted"
PENDING = "pending"
CONFIRMED = "confirmed"
DECLINED_ALL = "declined_all"
CONTACT_STATUSES = (NOT_CONTACTED, PENDING, CONFIRMED, DECLINED_ALL)

RESPONSE_STATUSES = ("none", PENDING, CONFIRMED, DECLINED_ALL)


def derive_contact_status(is_contacted: bool | None, response_status: str | None) -> str:
    """Collapse the stored (is_contacted, response_status) pair into one state."""

    if response_status == CONFIRMED:
        return CONFIRMED
    if response_status == DECLINED_ALL:
        return DECLINED_ALL
    if is_contacted or response_status == PENDING:
        return PENDING
    return NOT_CONTACTED


def apply_contact_status(contact: SubstituteContact, status: str, *, now: datetime | None = None) -> bool:
    """Move ``contact`` into ``status``. Returns True when shift selections must be cleared."""

    if status not in CONTACT_STATUSES:
        raise StaffingValidationError(f"Unknown contact status {status!r}", code="INVALID_CONTACT_STATUS")

    if status == NOT_CONTACTED:
        contact.is_contacted = False
        contact.response_status = "none"
        return False

    if not contact.is_contacted and contact.contacted_at is None:
        contact.contacted_at = now or datetime.now(timezone.utc)
    contact.is_contacted = True
    contact.response_status = status
    return status == DECLINED_ALL


def get_contact(db: Session, contact_id: Any) -> SubstituteContact:
    contact = db.get(SubstituteContact, contact_id)
    if contact is None:
        raise NotFoundError("Substitute contact not found", code="CONTACT_NOT_FOUND")
    return contact


def find_contact(db: Session, coverage_request_id: Any, sub_id: Any) -> SubstituteContact | None:
    return (
        db.execute(
            select(SubstituteContact)
            .where(SubstituteContact.coverage_request_id == coverage_request_id)
            .where(SubstituteContact.sub_id == sub_id)
        )
        .scalars()
        .first()
    )


def get_or_create_contact(db: Session, *, coverage_request_id: Any, sub_id: Any) -> SubstituteContact:
    contact = find_contact(db, coverage_request_id, sub_id)
    if contact is not None:
        return contact
    contact = SubstituteContact(coverage_request_id=coverage_request_id, sub_id=sub_id, response_status="none")
    db.add(contact)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not is_duplicate_key_error(exc):
            raise
        contact = find_contact(db, coverage_request_id, sub_id)
        if contact is None:
            raise
        return contact
    db.refresh(contact)
    return contact


def contact_overrides(db: Session, contact_id: Any) -> list[SubContactShiftOverride]:
    return (
        db.execute(select(SubContactShiftOverride).where(SubContactShiftOverride.substitute_contact_id == contact_id))
        .scalars()
        .all()
    )


def clear_selections(db: Session, contact_id: Any) -> int:
    result = db.execute(
        delete(SubContactShiftOverride).where(SubContactShiftOverride.substitute_contact_id == contact_id)
    )
    return int(result.rowcount or 0)


def upsert_overrides(db: Session, contact: SubstituteContact, overrides: Iterable[dict[str, Any]]) -> None:
    existing = {o.coverage_request_shift_id: o for o in contact_overrides(db, contact.id)}
    valid_ids = set(
        db.execute(
            select(CoverageRequestShift.id).where(
                CoverageRequestShift.coverage_request_id == contact.coverage_request_id
            )
        )
        .scalars()
        .all()
    )
    for item in overrides:
        shift_id = item["coverage_request_shift_id"]
        if shift_id not in valid_ids:
            raise StaffingValidationError(
                f"Shift {shift_id} does not belong to this coverage request", code="SHIFT_NOT_IN_REQUEST"
            )
        row = existing.get(shift_id)
        if row is None:
            row = SubContactShiftOverride(substitute_contact_id=contact.id, coverage_request_shift_id=shift_id)
            db.add(row)
            existing[shift_id] = row
        row.selected = bool(item.get("selected", False))
        row.override_availability = bool(item.get("override_availability", False))
        if "is_partial" in item:
            row.is_partial = bool(item["is_partial"])
        if "notes" in item:
            row.notes = item["notes"]


def assigned_shift_ids(db: Session, contact: SubstituteContact) -> list[Any]:
    shift_ids = (
        db.execute(
            select(CoverageRequestShift.id).where(
                CoverageRequestShift.coverage_request_id == contact.coverage_request_id
            )
        )
        .scalars()
        .all()
    )
    if not shift_ids:
        return []
    return (
        db.execute(
            select(SubAssignment.coverage_request_shift_id)
            .where(SubAssignment.sub_id == contact.sub_id)
            .where(SubAssignment.status == "active")
            .where(SubAssignment.coverage_request_shift_id.in_(shift_ids))
        )
        .scalars()
        .all()
    )


def contact_details(db: Session, contact: SubstituteContact) -> dict[str, Any]:
    overrides = contact_overrides(db, contact.id)
    return {
        "id": str(contact.id),
        "coverage_request_id": str(contact.coverage_request_id),
        "sub_id": str(contact.sub_id),
        "is_contacted": bool(contact.is_contacted),
        "contacted_at": contact.contacted_at.isoformat() if contact.contacted_at else None,
        "response_status": contact.response_status,
        "contact_status": derive_contact_status(contact.is_contacted, contact.response_status),
        "notes": contact.notes,
        "selected_shift_ids": [str(o.coverage_request_shift_id) for o in overrides if o.selected],
        "overridden_shift_ids": [str(o.coverage_request_shift_id) for o in overrides if o.override_availability],
        "shift_overrides": [
            {
                "coverage_request_shift_id": str(o.coverage_request_shift_id),
                "selected": bool(o.selected),
                "override_availability": bool(o.override_availability),
                "is_partial": bool(o.is_partial),
                "notes": o.notes,
            }
            for o in overrides
        ],
        "assigned_shift_ids": [str(i) for i in assigned_shift_ids(db, contact)],
    }


def update_contact(
    db: Session,
    *,
    contact_id: Any,
    contact_status: str | None = None,
    response_status: str | None = None,
    is_contacted: bool | None = None,
    notes: str | None = None,
    notes_set: bool = False,
    shift_overrides: list[dict[str, Any]] | None = None,
    selected_shift_keys: list[str] | None = None,
) -> SubstituteContact:
    """Save a contact: status transition, notes and shift selections in one commit."""

    contact = get_contact(db, contact_id)

    if contact_status is None and (response_status is not None or is_contacted is not None):
        if response_status is not None and response_status not in RESPONSE_STATUSES:
            raise StaffingValidationError(f"Unknown response status {response_status!r}", code="INVALID_RESPONSE_STATUS")
        contact_status = derive_contact_status(
            contact.is_contacted if is_contacted is None else is_contacted,
            contact.response_status if response_status is None else response_status,
        )

    if contact_status == DECLINED_ALL and selected_shift_keys:
        raise StaffingValidationError("Cannot decline all while shifts are selected", code="DECLINED_WITH_SELECTION")

    try:
        clear = False
        if contact_status is not None:
            clear = apply_contact_status(contact, contact_status)
        if notes_set:
            contact.notes = notes

        if clear:
            removed = clear_selections(db, contact.id)
            logger.debug("Contact %s declined all; cleared %d shift overrides", contact.id, removed)
        elif shift_overrides is not None:
            upsert_overrides(db, contact, shift_overrides)
        db.flush()

        if derive_contact_status(contact.is_contacted, contact.response_status) == CONFIRMED:
            selected = [o for o in contact_overrides(db, contact.id) if o.selected]
            if not selected and not assigned_shift_ids(db, contact):
                raise StaffingValidationError(
                    "Select at least one shift or change the status before saving as confirmed",
                    code="CONFIRMED_WITHOUT_SHIFTS",
                )
    except StaffingValidationError:
        db.rollback()
        raise

    db.commit()
    db.refresh(contact)
    return contact


def resolve_shift_overrides(
    db: Session,
    *,
    coverage_request_id: Any,
    selected_shift_keys: Iterable[str],
    override_shift_keys: Iterable[str],
    available_shift_keys: Iterable[str],
    unavailable_shift_keys: Iterable[str],
) -> dict[str, Any]:
    """Turn ``date|time_slot_code`` selections into per-shift override rows.

    Available shifts are selected as picked. Unavailable shifts are only
    selected when the director also overrode them.
    """

    selected = set(selected_shift_keys)
    overridden = set(override_shift_keys)

    rows = db.execute(
        select(CoverageRequestShift.id, CoverageRequestShift.date, TimeSlot.code)
        .join(TimeSlot, TimeSlot.id == CoverageRequestShift.time_slot_id)
        .where(CoverageRequestShift.coverage_request_id == coverage_request_id)
        .where(CoverageRequestShift.status == "active")
    ).all()
    id_by_key: dict[str, Any] = {}
    for shift_id, d, code in rows:
        if code:
            id_by_key.setdefault(shift_key(d, code), shift_id)

    overrides: list[dict[str, Any]] = []
    selected_ids: list[Any] = []
    for key in dict.fromkeys(available_shift_keys):
        shift_id = id_by_key.get(key)
        if shift_id is None:
            continue
        is_selected = key in selected
        overrides.append({"coverage_request_shift_id": shift_id, "selected": is_selected, "override_availability": False})
        if is_selected:
            selected_ids.append(shift_id)
    for key in dict.fromkeys(unavailable_shift_keys):
        shift_id = id_by_key.get(key)
        if shift_id is None:
            continue
        is_override = key in overridden
        is_selected = key in selected and is_override
        overrides.append(
            {"coverage_request_shift_id": shift_id, "selected": is_selected, "override_availability": is_override}
        )
        if is_selected:
            selected_ids.append(shift_id)

    return {"shift_overrides": overrides, "selected_shift_ids": selected_ids}

