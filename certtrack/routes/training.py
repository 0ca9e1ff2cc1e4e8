from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from certtrack.routes._deps import (
    actor_from_request,
    service_from_request,
    source_address_from_request,
    trace_id_from_request,
)
from certtrack.schemas import (
    AssignTierRequest,
    CompleteArtifactRequest,
    EditCompletedDateRequest,
    ScheduleArtifactRequest,
    success_envelope,
)

router = APIRouter(prefix="/api/v1", tags=["training"])


@router.post("/records/{employee_id}/schedule")
def schedule_artifact(employee_id: int, payload: ScheduleArtifactRequest, request: Request):
    data = service_from_request(request).schedule_artifact(
        employee_id,
        payload.column,
        payload.date,
        actor=actor_from_request(request),
        source_address=source_address_from_request(request),
    )
    return success_envelope(data, trace_id_from_request(request), message="training scheduled")


@router.post("/records/{employee_id}/complete")
def complete_artifact(employee_id: int, payload: CompleteArtifactRequest, request: Request):
    data = service_from_request(request).complete_artifact(
        employee_id,
        payload.schedule_column,
        payload.complete_column,
        actor=actor_from_request(request),
        source_address=source_address_from_request(request),
    )
    return success_envelope(data, trace_id_from_request(request), message="training completed")


@router.post("/records/{employee_id}/edit-completed-date")
def edit_completed_date(employee_id: int, payload: EditCompletedDateRequest, request: Request):
    data = service_from_request(request).edit_completed_date(
        employee_id,
        payload.schedule_column,
        payload.complete_column,
        payload.new_date,
        actor=actor_from_request(request),
        source_address=source_address_from_request(request),
    )
    return success_envelope(data, trace_id_from_request(request), message="completed date reopened")


@router.post("/records/{employee_id}/conference/approve")
def approve_conference(employee_id: int, request: Request):
    data = service_from_request(request).approve_conference(
        employee_id,
        actor=actor_from_request(request),
        source_address=source_address_from_request(request),
    )
    return success_envelope(data, trace_id_from_request(request), message="conference approved")


@router.post("/records/{employee_id}/conference/reject")
def reject_conference(employee_id: int, request: Request):
    data = service_from_request(request).reject_conference(
        employee_id,
        actor=actor_from_request(request),
        source_address=source_address_from_request(request),
    )
    return success_envelope(data, trace_id_from_request(request), message="conference rejected")


@router.post("/tier-assignments")
def assign_tier(payload: AssignTierRequest, request: Request):
    data = service_from_request(request).assign_tier(
        payload.employee_number,
        payload.tier,
        assigned_date=payload.assigned_date,
        actor=actor_from_request(request),
        source_address=source_address_from_request(request),
    )
    return JSONResponse(status_code=201, content=success_envelope(data, trace_id_from_request(request)))
