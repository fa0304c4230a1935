"""Tourist review of a completed (or missed) trip. One per request, immutable."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from guide_match.models.base import Base, new_id


class Review(Base):
    __tablename__ = "reviews"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    request_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("tourist_requests.id"), unique=True
    )
    student_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("students.id"), index=True
    )
    rating: Mapped[int] = mapped_column(sa.Integer)
    text: Mapped[str | None] = mapped_column(sa.String(500), nullable=True)
    attributes: Mapped[list] = mapped_column(sa.JSON, default=list)
    no_show: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    price_paid: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="valid_rating"),
    )
