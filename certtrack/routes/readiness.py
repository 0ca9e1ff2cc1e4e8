from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from certtrack.filters import RecordFilters
from certtrack.routes._deps import record_filters, service_from_request, trace_id_from_request
from certtrack.schemas import success_envelope

router = APIRouter(prefix="/api/v1", tags=["readiness"])


@router.get("/readiness/{tier}")
def list_ready_for_tier(
    tier: str,
    request: Request,
    filters: RecordFilters = Depends(record_filters),
    page: int | None = None,
    limit: int | None = None,
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_order: str | None = Query(default=None, alias="sortOrder"),
):
    data = service_from_request(request).get_ready_for_tier(
        tier,
        filters=filters,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return success_envelope(data, trace_id_from_request(request))
