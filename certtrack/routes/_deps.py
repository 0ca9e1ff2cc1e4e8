from __future__ import annotations

import uuid
from typing import Any

from fastapi import Query, Request
from fastapi.responses import JSONResponse

from certtrack.filters import RecordFilters
from certtrack.schemas import error_envelope
from certtrack.service import CertificationService

_ACTOR_HEADERS = ("x-ms-client-principal-name", "x-user-email")


def trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def actor_from_request(request: Request) -> str:
    for header in _ACTOR_HEADERS:
        value = request.headers.get(header, "").strip()
        if value:
            return value
    return "unknown"


def source_address_from_request(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


def service_from_request(request: Request) -> CertificationService:
    return request.app.state.service


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_envelope(
            code=code,
            message=message,
            error_class=error_class,
            retryable=retryable,
            trace_id=trace_id_from_request(request),
            details=details,
        ),
    )


def record_filters(
    tier: str | None = None,
    facility: list[str] | None = Query(default=None),
    area: str | None = None,
    search: str | None = None,
    job_title: str | None = Query(default=None, alias="jobTitle"),
    date_field: str | None = Query(default=None, alias="dateField"),
    date: str | None = None,
    status: str | None = None,
) -> RecordFilters:
    return RecordFilters.build(
        tier=tier,
        facility=facility,
        area=area,
        search=search,
        job_title=job_title,
        date_field=date_field,
        date=date,
        status=status,
    )
