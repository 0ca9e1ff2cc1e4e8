from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ScheduleArtifactRequest(BaseModel):
    column: str = Field(min_length=1)
    date: str = Field(min_length=1)


class CompleteArtifactRequest(BaseModel):
    schedule_column: str = Field(min_length=1)
    complete_column: str = Field(min_length=1)


class EditCompletedDateRequest(BaseModel):
    schedule_column: str = Field(min_length=1)
    complete_column: str = Field(min_length=1)
    new_date: str = Field(min_length=1)


class NotesRequest(BaseModel):
    notes: str = Field(default="", max_length=4000)
    tier: str | None = None


class AdvisorUpdateRequest(BaseModel):
    advisor_id: int | None = None
    tier: str | None = None


class AdvisorCreateRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)


class AssignTierRequest(BaseModel):
    employee_number: str = Field(min_length=1)
    tier: str = Field(min_length=1)
    assigned_date: str | None = None


class AwardTierRequest(BaseModel):
    awarded_date: str | None = None


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
