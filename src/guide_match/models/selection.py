"""One guide's candidacy for one tourist request."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from guide_match.models.base import Base, new_id


class SelectionStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"

    TERMINAL = frozenset({ACCEPTED, DECLINED, EXPIRED})


class Selection(Base):
    """Candidate selection row.

    ``pending`` moves to exactly one of the terminal states and never back.
    The partial unique index ``uq_selections_one_accepted`` is what makes
    "at most one accepted selection per request" hold across concurrent
    writers; application code only ever attempts conditional updates
    against it.
    """

    __tablename__ = "selections"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    request_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("tourist_requests.id"), index=True
    )
    student_id: Mapped[str] = mapped_column(sa.String(36), sa.ForeignKey("students.id"))
    status: Mapped[str] = mapped_column(sa.String, default=SelectionStatus.PENDING)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )
    responded_at: Mapped[datetime | None] = mapped_column(sa.DateTime, nullable=True)

    __table_args__ = (
        sa.UniqueConstraint("request_id", "student_id", name="uq_selections_request_student"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'declined', 'expired')",
            name="valid_selection_status",
        ),
        sa.Index(
            "uq_selections_one_accepted",
            "request_id",
            unique=True,
            postgresql_where=sa.text("status = 'accepted'"),
            sqlite_where=sa.text("status = 'accepted'"),
        ),
    )
