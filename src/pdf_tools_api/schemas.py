from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class PageRef(BaseModel):
    """One entry of a layout plan: a 1-based page of an uploaded document."""

    model_config = ConfigDict(strict=True)

    doc: str
    page: int


class NPagesResponse(BaseModel):
    pages: int


class HealthResponse(BaseModel):
    status: str


class ErrorBody(BaseModel):
    code: str
    message: str
    trace_id: str | None = None


class ErrorEnvelope(BaseModel):
    error: ErrorBody
