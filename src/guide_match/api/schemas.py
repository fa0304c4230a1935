"""Pydantic request/response schemas for the guide-match API."""

from __future__ import annotations

import datetime as dt
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _coerce_to_str(v: object) -> str | None:
    """Coerce datetime objects to ISO string for schema output."""
    if v is None:
        return None
    if isinstance(v, (dt.date, dt.datetime)):
        return v.isoformat()
    return str(v)


OptDateStr = Annotated[str | None, BeforeValidator(_coerce_to_str)]


class ErrorResponse(BaseModel):
    error: str
    message: str


class TokenBody(BaseModel):
    """Token lifted from the link's URL fragment by the landing page."""

    token: str = Field(max_length=4096)


class RespondResponse(BaseModel):
    outcome: str
    status: str
    request_id: str
    selection_id: str


class CreateSelectionsRequest(BaseModel):
    student_ids: list[str] = Field(max_length=50)


class SelectionInvite(BaseModel):
    selection_id: str
    student_id: str
    status: str
    accept_url: str
    decline_url: str


class CreateSelectionsResponse(BaseModel):
    request_id: str
    selections: list[SelectionInvite]


class RequestView(BaseModel):
    request_id: str
    city: str
    status: str
    selection_status: str | None = None
    assigned_to_you: bool


class ReviewCreateRequest(BaseModel):
    # Bounds are enforced by ReliabilityScorer so failures share one error shape
    request_id: str
    student_id: str
    rating: int
    no_show: bool
    text: str | None = None
    attributes: list[str] = []
    price_paid: float | None = None
    is_anonymous: bool = False


class ReviewSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: str
    student_id: str
    rating: int
    text: str | None = None
    attributes: list[str] = []
    no_show: bool
    is_anonymous: bool
    created_at: OptDateStr = None


class MetricsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    average_rating: float | None = None
    completion_rate: float | None = None
    reliability_badge: str
    trips_hosted: int
    no_show_count: int
    total_reviews: int


class ReviewCreateResponse(BaseModel):
    review: ReviewSchema
    metrics: MetricsSchema
