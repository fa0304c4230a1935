"""Audit log model for selection responses and review submissions."""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from guide_match.models.base import Base


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    # "selection_accept", "selection_decline", "selection_lost", "review_create"
    action_type: Mapped[str] = mapped_column(sa.String)
    request_id: Mapped[str | None] = mapped_column(sa.String(36), nullable=True, index=True)
    selection_id: Mapped[str | None] = mapped_column(sa.String(36), nullable=True)
    student_id: Mapped[str | None] = mapped_column(sa.String(36), nullable=True)
    details: Mapped[dict | None] = mapped_column(sa.JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")
    )
