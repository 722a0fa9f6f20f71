"""Ticket model: support tickets raised by workflows."""

from typing import Optional

from sqlalchemy import JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel, TenantMixin


class Ticket(TenantMixin, BaseModel):
    """Support ticket, usually opened by a ``create_ticket`` action."""

    __tablename__ = "tickets"

    title: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(default="medium")
    status: Mapped[str] = mapped_column(default="open", index=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(nullable=True)
    contact_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    submission_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    source: Mapped[str] = mapped_column(default="workflow")
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
