from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from certtrack.filters import RecordFilters
from certtrack.routes._deps import (
    actor_from_request,
    record_filters,
    service_from_request,
    source_address_from_request,
    trace_id_from_request,
)
from certtrack.schemas import AdvisorUpdateRequest, AwardTierRequest, NotesRequest, success_envelope

router = APIRouter(prefix="/api/v1", tags=["records"])


@router.get("/records")
def list_records(
    request: Request,
    filters: RecordFilters = Depends(record_filters),
    page: int | None = None,
    limit: int | None = None,
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_order: str | None = Query(default=None, alias="sortOrder"),
):
    data = service_from_request(request).get_records(
        filters=filters,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return success_envelope(data, trace_id_from_request(request))


@router.get("/records/unique")
def list_unique_records(
    request: Request,
    filters: RecordFilters = Depends(record_filters),
    page: int | None = None,
    limit: int | None = None,
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_order: str | None = Query(default=None, alias="sortOrder"),
):
    data = service_from_request(request).get_unique_records(
        filters=filters,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return success_envelope(data, trace_id_from_request(request))


@router.get("/records/{employee_id}")
def get_record(employee_id: int, request: Request):
    data = service_from_request(request).get_record_by_id(employee_id)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/records/{employee_id}/history")
def get_tier_history(employee_id: int, request: Request):
    data = service_from_request(request).get_tier_history(employee_id)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/filter-options")
def get_filter_options(request: Request):
    return success_envelope(service_from_request(request).get_filter_options(), trace_id_from_request(request))


@router.put("/records/{employee_id}/notes")
def update_notes(employee_id: int, payload: NotesRequest, request: Request):
    data = service_from_request(request).update_notes(
        employee_id,
        payload.notes,
        tier=payload.tier,
        actor=actor_from_request(request),
        source_address=source_address_from_request(request),
    )
    return success_envelope(data, trace_id_from_request(request), message="notes updated")


@router.put("/records/{employee_id}/advisor")
def update_advisor(employee_id: int, payload: AdvisorUpdateRequest, request: Request):
    data = service_from_request(request).update_advisor(
        employee_id,
        payload.advisor_id,
        tier=payload.tier,
        actor=actor_from_request(request),
        source_address=source_address_from_request(request),
    )
    return success_envelope(data, trace_id_from_request(request), message="advisor updated")


@router.post("/records/{employee_id}/award")
def award_tier(employee_id: int, payload: AwardTierRequest, request: Request):
    data = service_from_request(request).award_tier(
        employee_id,
        awarded_date=payload.awarded_date,
        actor=actor_from_request(request),
        source_address=source_address_from_request(request),
    )
    return success_envelope(data, trace_id_from_request(request), message="tier awarded")
