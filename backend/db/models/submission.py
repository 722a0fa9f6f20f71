"""Submission model: completed or partial survey responses."""

from typing import Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel, TenantMixin


class Submission(TenantMixin, BaseModel):
    __tablename__ = "submissions"

    form_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    contact_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    status: Mapped[str] = mapped_column(default="completed")
    score: Mapped[Optional[float]] = mapped_column(nullable=True)
    sentiment: Mapped[Optional[str]] = mapped_column(nullable=True)
    follow_up_status: Mapped[Optional[str]] = mapped_column(nullable=True)
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    answers: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True, default=dict)
