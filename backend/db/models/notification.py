"""Notification model: in-app notifications for tenant users."""

from typing import Optional

from sqlalchemy import JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel, TenantMixin


class Notification(TenantMixin, BaseModel):
    """In-app notification written by a ``send_notification`` action."""

    __tablename__ = "notifications"

    user_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    title: Mapped[str] = mapped_column(nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notification_type: Mapped[str] = mapped_column(default="workflow")
    priority: Mapped[str] = mapped_column(default="normal")
    is_read: Mapped[bool] = mapped_column(default=False)
    data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
