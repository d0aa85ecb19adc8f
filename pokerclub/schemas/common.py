"""Shared response shapes."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ErrorKind = Literal["validation", "not_found", "conflict", "invalid_state", "forbidden", "error"]


class BaseSchema(BaseModel):
    """Response model read straight off ORM rows."""

    model_config = ConfigDict(from_attributes=True)


class ErrorDetail(BaseModel):
    code: str = Field(..., description="Stable error code, e.g. SEAT_OCCUPIED")
    kind: ErrorKind
    message: str
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Offending ids and, for invalid_state, the current_state",
    )


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response."""

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    error: ErrorDetail
    trace_id: str = Field(..., alias="traceId")


class CountResponse(BaseModel):
    """Result of a bulk status update."""

    count: int
    message: str
