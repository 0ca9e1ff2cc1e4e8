from __future__ import annotations

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from certtrack.routes._deps import (
    actor_from_request,
    service_from_request,
    source_address_from_request,
    trace_id_from_request,
)
from certtrack.schemas import AdvisorCreateRequest, success_envelope

router = APIRouter(prefix="/api/v1", tags=["audit"])


@router.get("/audit-logs")
def list_audit_logs(
    request: Request,
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    user: str | None = None,
    action: str | None = None,
    search: str | None = None,
    page: int | None = None,
    limit: int | None = None,
):
    data = service_from_request(request).get_audit_log(
        start_date=start_date,
        end_date=end_date,
        actor=user,
        action=action,
        search=search,
        page=page,
        limit=limit,
    )
    return success_envelope(data, trace_id_from_request(request))


@router.get("/audit-logs/actors")
def list_audit_actors(request: Request):
    items = service_from_request(request).get_audit_actors()
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/audit-logs/stats")
def audit_stats(request: Request):
    return success_envelope(service_from_request(request).get_audit_stats(), trace_id_from_request(request))


@router.get("/advisors")
def list_advisors(request: Request):
    items = service_from_request(request).list_advisors()
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.post("/advisors")
def add_advisor(payload: AdvisorCreateRequest, request: Request):
    data = service_from_request(request).add_advisor(
        payload.first_name,
        payload.last_name,
        actor=actor_from_request(request),
        source_address=source_address_from_request(request),
    )
    return JSONResponse(status_code=201, content=success_envelope(data, trace_id_from_request(request)))
