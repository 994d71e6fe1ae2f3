from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from core.database import get_db
from schemas.sub_finder import (
    AssignShiftsRequest,
    ShiftOverridesRequest,
    SubstituteContactUpdate,
    UnassignShiftsRequest,
)
from services.coverage import coverage_details, ensure_coverage_request, get_absence, remaining_shifts
from services.sub_assignments import assign_sub_shifts, candidate_subs, sub_availability, unassign_shifts
from services.sub_contacts import (
    contact_details,
    get_contact,
    get_or_create_contact,
    resolve_shift_overrides,
    update_contact,
)


router = APIRouter()


@router.get("/coverage-request/{absence_id}")
def get_coverage_request_for_absence(absence_id: uuid.UUID, db: Session = Depends(get_db)) -> dict:
    request = ensure_coverage_request(db, get_absence(db, absence_id))
    return coverage_details(db, request)


@router.get("/coverage-request/{absence_id}/assigned-shifts")
def get_assigned_shifts(absence_id: uuid.UUID, db: Session = Depends(get_db)) -> dict:
    request = ensure_coverage_request(db, get_absence(db, absence_id))
    return {"coverage_request_id": str(request.id), **remaining_shifts(db, request)}


@router.get("/coverage-request/{absence_id}/candidates")
def get_candidate_subs(
    absence_id: uuid.UUID,
    include_flexible: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[dict]:
    request = ensure_coverage_request(db, get_absence(db, absence_id))
    return candidate_subs(db, coverage_request_id=request.id, include_flexible=include_flexible)


@router.get("/availability")
def get_sub_availability(
    coverage_request_id: uuid.UUID = Query(...),
    sub_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
) -> list[dict]:
    return sub_availability(db, coverage_request_id=coverage_request_id, sub_id=sub_id)


@router.get("/substitute-contacts")
def get_substitute_contact(
    id: uuid.UUID | None = Query(default=None),
    coverage_request_id: uuid.UUID | None = Query(default=None),
    sub_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    if id is not None:
        contact = get_contact(db, id)
    elif coverage_request_id is not None and sub_id is not None:
        contact = get_or_create_contact(db, coverage_request_id=coverage_request_id, sub_id=sub_id)
    else:
        raise HTTPException(status_code=400, detail="CONTACT_LOOKUP_REQUIRES_ID_OR_REQUEST_AND_SUB")
    return contact_details(db, contact)


@router.put("/substitute-contacts")
def put_substitute_contact(payload: SubstituteContactUpdate, db: Session = Depends(get_db)) -> dict:
    overrides = None
    if payload.shift_overrides is not None:
        overrides = [o.model_dump(exclude_none=True) for o in payload.shift_overrides]
    contact = update_contact(
        db,
        contact_id=payload.id,
        contact_status=payload.contact_status,
        response_status=payload.response_status,
        is_contacted=payload.is_contacted,
        notes=payload.notes,
        notes_set="notes" in payload.model_fields_set,
        shift_overrides=overrides,
        selected_shift_keys=payload.selected_shift_keys,
    )
    return contact_details(db, contact)


@router.post("/shift-overrides")
def post_shift_overrides(payload: ShiftOverridesRequest, db: Session = Depends(get_db)) -> dict:
    result = resolve_shift_overrides(
        db,
        coverage_request_id=payload.coverage_request_id,
        selected_shift_keys=payload.selected_shift_keys,
        override_shift_keys=payload.override_shift_keys,
        available_shift_keys=payload.available_shift_keys,
        unavailable_shift_keys=payload.unavailable_shift_keys,
    )
    return {
        "shift_overrides": [
            {**o, "coverage_request_shift_id": str(o["coverage_request_shift_id"])} for o in result["shift_overrides"]
        ],
        "selected_shift_ids": [str(i) for i in result["selected_shift_ids"]],
    }


@router.post("/assign-shifts")
def post_assign_shifts(payload: AssignShiftsRequest, db: Session = Depends(get_db)) -> dict:
    return assign_sub_shifts(
        db,
        coverage_request_id=payload.coverage_request_id,
        sub_id=payload.sub_id,
        selected_shift_ids=list(payload.selected_shift_ids),
        confirm=payload.confirm,
        swap=payload.swap,
    )


@router.post("/unassign-shifts")
def post_unassign_shifts(payload: UnassignShiftsRequest, db: Session = Depends(get_db)) -> dict:
    result = unassign_shifts(
        db,
        absence_id=payload.absence_id,
        sub_id=payload.sub_id,
        scope=payload.scope,
        assignment_id=payload.assignment_id,
        coverage_request_shift_id=payload.coverage_request_shift_id,
    )
    return {"ok": True, **result}
