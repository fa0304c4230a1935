"""Local guide record, carrying the reliability metrics derived from reviews."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from guide_match.models.base import Base, new_id


class Student(Base):
    """A student guide.

    The metric columns are fully rewritten by
    :func:`guide_match.reviews.scorer.ReliabilityScorer.recompute` and are
    never incremented in place.  ``average_rating`` and ``completion_rate``
    stay NULL until the first review exists.
    """

    __tablename__ = "students"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(sa.String)
    email: Mapped[str] = mapped_column(sa.String, unique=True)

    # Derived metrics
    average_rating: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    completion_rate: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    reliability_badge: Mapped[str | None] = mapped_column(sa.String, nullable=True)
    trips_hosted: Mapped[int] = mapped_column(sa.Integer, default=0)
    no_show_count: Mapped[int] = mapped_column(sa.Integer, default=0)
    metrics_updated_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        sa.Index("ix_students_badge_rating", "reliability_badge", "average_rating"),
    )
