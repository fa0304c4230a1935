"""Review submission and guide metrics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from guide_match.api.deps import get_db, get_scorer
from guide_match.api.schemas import (
    ErrorResponse,
    MetricsSchema,
    ReviewCreateRequest,
    ReviewCreateResponse,
    ReviewSchema,
)
from guide_match.reviews.scorer import (
    ReliabilityScorer,
    ReviewInput,
    get_student_metrics,
    list_student_reviews,
)

router = APIRouter(prefix="/api", tags=["reviews"])


@router.post(
    "/reviews",
    response_model=ReviewCreateResponse,
    status_code=201,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_review(
    body: ReviewCreateRequest,
    db: AsyncSession = Depends(get_db),
    scorer: ReliabilityScorer = Depends(get_scorer),
) -> ReviewCreateResponse:
    """Store a review and return the guide's recomputed metrics."""
    review, metrics = await scorer.create_review(db, ReviewInput(**body.model_dump()))
    return ReviewCreateResponse(
        review=ReviewSchema.model_validate(review),
        metrics=MetricsSchema.model_validate(metrics),
    )


@router.get("/students/{student_id}/metrics", response_model=MetricsSchema)
async def student_metrics(
    student_id: str,
    db: AsyncSession = Depends(get_db),
) -> MetricsSchema:
    metrics = await get_student_metrics(db, student_id)
    if metrics is None:
        raise HTTPException(status_code=404, detail="Student not found")
    return MetricsSchema.model_validate(metrics)


@router.get("/students/{student_id}/reviews", response_model=list[ReviewSchema])
async def student_reviews(
    student_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[ReviewSchema]:
    reviews = await list_student_reviews(db, student_id)
    return [ReviewSchema.model_validate(r) for r in reviews]
