"""Tourist trip request. Intake owns it; the arbiter only marks it matched."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from guide_match.models.base import Base, new_id


class RequestStatus:
    OPEN = "open"
    MATCHED = "matched"
    CLOSED = "closed"


class TouristRequest(Base):
    __tablename__ = "tourist_requests"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(sa.String)
    city: Mapped[str] = mapped_column(sa.String)
    dates: Mapped[dict | None] = mapped_column(sa.JSON, nullable=True)
    status: Mapped[str] = mapped_column(sa.String, default=RequestStatus.OPEN)
    assigned_student_id: Mapped[str | None] = mapped_column(
        sa.String(36), sa.ForeignKey("students.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )
    expires_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)

    __table_args__ = (
        sa.CheckConstraint("status IN ('open', 'matched', 'closed')", name="valid_request_status"),
    )
