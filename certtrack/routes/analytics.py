from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from certtrack.filters import RecordFilters
from certtrack.routes._deps import record_filters, service_from_request, trace_id_from_request
from certtrack.schemas import success_envelope

router = APIRouter(prefix="/api/v1", tags=["analytics"])


@router.get("/dashboard/summary")
def dashboard_summary(request: Request, filters: RecordFilters = Depends(record_filters)):
    data = service_from_request(request).get_dashboard_summary(filters=filters)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/analytics/overview")
def analytics_overview(
    request: Request,
    filters: RecordFilters = Depends(record_filters),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
):
    data = service_from_request(request).get_analytics_overview(
        filters=filters, start_date=start_date, end_date=end_date
    )
    return success_envelope(data, trace_id_from_request(request))


@router.get("/analytics/facilities")
def facility_performance(
    request: Request,
    filters: RecordFilters = Depends(record_filters),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
):
    items = service_from_request(request).get_facility_performance(
        filters=filters, start_date=start_date, end_date=end_date
    )
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/analytics/areas")
def area_performance(
    request: Request,
    filters: RecordFilters = Depends(record_filters),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
):
    items = service_from_request(request).get_area_performance(
        filters=filters, start_date=start_date, end_date=end_date
    )
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/analytics/trends")
def monthly_trends(request: Request, filters: RecordFilters = Depends(record_filters)):
    items = service_from_request(request).get_monthly_trends(filters=filters)
    return success_envelope({"items": items}, trace_id_from_request(request))


@router.get("/analytics/progress")
def certification_progress(
    request: Request,
    filters: RecordFilters = Depends(record_filters),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
):
    items = service_from_request(request).get_certification_progress(
        filters=filters, start_date=start_date, end_date=end_date
    )
    return success_envelope({"items": items}, trace_id_from_request(request))


@router.get("/analytics/recent")
def recent_activity(request: Request, filters: RecordFilters = Depends(record_filters)):
    items = service_from_request(request).get_recent_activity(filters=filters)
    return success_envelope({"items": items}, trace_id_from_request(request))


@router.get("/analytics/metrics")
def summary_metrics(request: Request, filters: RecordFilters = Depends(record_filters)):
    data = service_from_request(request).get_summary_metrics(filters=filters)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/analytics/completions")
def completions(
    request: Request,
    filters: RecordFilters = Depends(record_filters),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
):
    data = service_from_request(request).get_completions(filters=filters, start_date=start_date, end_date=end_date)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/employees/overview")
def employee_overview(
    request: Request,
    filters: RecordFilters = Depends(record_filters),
    page: int | None = None,
    limit: int | None = None,
):
    data = service_from_request(request).get_employee_overview(filters=filters, page=page, limit=limit)
    return success_envelope(data, trace_id_from_request(request))
