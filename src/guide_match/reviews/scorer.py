"""Review intake and guide reliability metrics.

Metrics are always recomputed from the full review history of a guide,
never patched incrementally, and the recompute runs in the same
transaction as the review insert.  A committed review is therefore never
observable next to stale metrics.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from guide_match.clock import Clock, SystemClock, naive_utc
from guide_match.db.timeouts import bounded
from guide_match.errors import ReviewConflict, ValidationError
from guide_match.models.audit_log import AuditLog
from guide_match.models.review import Review
from guide_match.models.student import Student
from guide_match.models.tourist_request import TouristRequest
from guide_match.reviews.attributes import MAX_ATTRIBUTES, is_valid_attribute

logger = structlog.get_logger()

MAX_REVIEW_TEXT_LENGTH = 500
MIN_RATING = 1
MAX_RATING = 5

GOLD_MIN_COMPLETION = 95.0
GOLD_MIN_REVIEWS = 10
SILVER_MIN_COMPLETION = 90.0
SILVER_MIN_REVIEWS = 5

DEFAULT_TIMEOUT_SECONDS = 5.0


class ReliabilityBadge:
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


@dataclass(frozen=True)
class ReviewInput:
    request_id: str
    student_id: str
    rating: int
    no_show: bool
    text: str | None = None
    attributes: list[str] = field(default_factory=list)
    price_paid: float | None = None
    is_anonymous: bool = False


@dataclass(frozen=True)
class StudentMetrics:
    """Derived trust metrics for one guide.

    ``average_rating`` and ``completion_rate`` are ``None`` when the guide
    has no reviews yet; they are never reported as 0.
    """

    average_rating: float | None
    completion_rate: float | None
    reliability_badge: str
    trips_hosted: int
    no_show_count: int
    total_reviews: int


def badge_for(completion_rate: float | None, total_reviews: int) -> str:
    if completion_rate is None:
        return ReliabilityBadge.BRONZE
    if completion_rate >= GOLD_MIN_COMPLETION and total_reviews >= GOLD_MIN_REVIEWS:
        return ReliabilityBadge.GOLD
    if completion_rate >= SILVER_MIN_COMPLETION and total_reviews >= SILVER_MIN_REVIEWS:
        return ReliabilityBadge.SILVER
    return ReliabilityBadge.BRONZE


def compute_metrics(reviews: Sequence[tuple[int, bool]]) -> StudentMetrics:
    """Compute metrics from ``(rating, no_show)`` pairs.

    Example:
        >>> compute_metrics([(5, False), (4, False), (3, False), (5, False)])
        StudentMetrics(average_rating=4.25, completion_rate=100.0, reliability_badge='bronze', trips_hosted=4, no_show_count=0, total_reviews=4)
    """
    total = len(reviews)
    no_shows = sum(1 for _, no_show in reviews if no_show)
    completed = total - no_shows

    if total == 0:
        average = None
        completion_rate = None
    else:
        average = sum(rating for rating, _ in reviews) / total
        completion_rate = 100.0 * completed / total

    return StudentMetrics(
        average_rating=average,
        completion_rate=completion_rate,
        reliability_badge=badge_for(completion_rate, total),
        trips_hosted=completed,
        no_show_count=no_shows,
        total_reviews=total,
    )


def validate_review_input(data: ReviewInput) -> ReviewInput:
    """Check bounds and vocabulary; return the input with text trimmed."""
    if isinstance(data.rating, bool) or not isinstance(data.rating, int):
        raise ValidationError("Rating must be an integer")
    if not MIN_RATING <= data.rating <= MAX_RATING:
        raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

    text = data.text.strip() if data.text is not None else None
    if text is not None and len(text) > MAX_REVIEW_TEXT_LENGTH:
        raise ValidationError(
            f"Review text must not exceed {MAX_REVIEW_TEXT_LENGTH} characters"
        )

    if len(data.attributes) > MAX_ATTRIBUTES:
        raise ValidationError(f"At most {MAX_ATTRIBUTES} attributes are allowed")
    for attribute in data.attributes:
        if not is_valid_attribute(attribute):
            raise ValidationError(f"Invalid attribute: {attribute}")

    if data.price_paid is not None and data.price_paid <= 0:
        raise ValidationError("Price paid must be positive")

    return ReviewInput(
        request_id=data.request_id,
        student_id=data.student_id,
        rating=data.rating,
        no_show=data.no_show,
        text=text or None,
        attributes=list(dict.fromkeys(data.attributes)),
        price_paid=data.price_paid,
        is_anonymous=data.is_anonymous,
    )


async def _lock_student(session: AsyncSession, student_id: str) -> bool:
    """Row-lock a guide so metric recomputes for them run one at a time."""
    stmt = sa.select(Student.id).where(Student.id == student_id).with_for_update(key_share=True)
    return (await session.scalar(stmt)) is not None


class ReliabilityScorer:
    def __init__(
        self,
        clock: Clock | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.clock = clock or SystemClock()
        self.timeout_seconds = timeout_seconds

    async def create_review(
        self, session: AsyncSession, data: ReviewInput
    ) -> tuple[Review, StudentMetrics]:
        """Validate and store a review, then recompute the guide's metrics.

        Raises:
            ValidationError: bounds, vocabulary, or unknown request/student.
            ReviewConflict: the request already has a review.
            StorageTimeout: the transaction did not finish in time.
        """
        data = validate_review_input(data)
        return await bounded(
            "create_review", self._create_review(session, data), self.timeout_seconds
        )

    async def _create_review(
        self, session: AsyncSession, data: ReviewInput
    ) -> tuple[Review, StudentMetrics]:
        try:
            async with session.begin():
                request = await session.get(TouristRequest, data.request_id)
                if request is None:
                    raise ValidationError(f"Request {data.request_id} not found")
                existing = await session.scalar(
                    sa.select(Review.id).where(Review.request_id == data.request_id)
                )
                if existing is not None:
                    raise ReviewConflict(f"Review already exists for request {data.request_id}")
                if (
                    request.assigned_student_id is not None
                    and request.assigned_student_id != data.student_id
                ):
                    raise ValidationError("Review must be for the request's assigned guide")
                if not await _lock_student(session, data.student_id):
                    raise ValidationError(f"Student {data.student_id} not found")

                review = Review(
                    request_id=data.request_id,
                    student_id=data.student_id,
                    rating=data.rating,
                    text=data.text,
                    attributes=data.attributes,
                    no_show=data.no_show,
                    price_paid=data.price_paid,
                    is_anonymous=data.is_anonymous,
                )
                session.add(review)
                await session.flush()
                await session.refresh(review)

                metrics = await self.recompute(session, data.student_id)

                session.add(
                    AuditLog(
                        action_type="review_create",
                        request_id=data.request_id,
                        student_id=data.student_id,
                        details={"review_id": review.id, "rating": data.rating},
                    )
                )
        except IntegrityError as exc:
            # Unique constraint on reviews.request_id lost to a concurrent insert
            raise ReviewConflict(
                f"Review already exists for request {data.request_id}"
            ) from exc

        logger.info(
            "review_created",
            request_id=data.request_id,
            student_id=data.student_id,
            rating=data.rating,
            no_show=data.no_show,
            badge=metrics.reliability_badge,
        )
        return review, metrics

    async def recompute(self, session: AsyncSession, student_id: str) -> StudentMetrics:
        """Recompute and store a guide's metrics from all of their reviews.

        Must be called within an active ``session.begin()`` context.  The
        guide's row stays locked until that transaction ends.
        """
        if not await _lock_student(session, student_id):
            raise ValidationError(f"Student {student_id} not found")
        rows = (
            await session.execute(
                sa.select(Review.rating, Review.no_show).where(Review.student_id == student_id)
            )
        ).all()
        metrics = compute_metrics([(row.rating, row.no_show) for row in rows])

        await session.execute(
            sa.update(Student)
            .where(Student.id == student_id)
            .values(
                average_rating=metrics.average_rating,
                completion_rate=metrics.completion_rate,
                reliability_badge=metrics.reliability_badge,
                trips_hosted=metrics.trips_hosted,
                no_show_count=metrics.no_show_count,
                metrics_updated_at=naive_utc(self.clock.now()),
            )
        )
        logger.debug("metrics_recomputed", student_id=student_id, total_reviews=metrics.total_reviews)
        return metrics

    async def refresh_metrics(self, session: AsyncSession, student_id: str) -> StudentMetrics:
        """Run :meth:`recompute` in its own transaction (backfills, CLI)."""

        async def _run() -> StudentMetrics:
            async with session.begin():
                return await self.recompute(session, student_id)

        return await bounded("refresh_metrics", _run(), self.timeout_seconds)


async def get_student_metrics(session: AsyncSession, student_id: str) -> StudentMetrics | None:
    """Read a guide's stored metrics, or ``None`` for an unknown guide."""
    student = await session.get(Student, student_id)
    if student is None:
        return None
    total = await session.scalar(
        sa.select(sa.func.count()).select_from(Review).where(Review.student_id == student_id)
    )
    return StudentMetrics(
        average_rating=student.average_rating,
        completion_rate=student.completion_rate,
        reliability_badge=student.reliability_badge or ReliabilityBadge.BRONZE,
        trips_hosted=student.trips_hosted,
        no_show_count=student.no_show_count,
        total_reviews=total or 0,
    )


async def list_student_reviews(session: AsyncSession, student_id: str) -> Sequence[Review]:
    stmt = (
        sa.select(Review)
        .where(Review.student_id == student_id)
        .order_by(Review.created_at.desc(), Review.id)
    )
    return (await session.execute(stmt)).scalars().all()
