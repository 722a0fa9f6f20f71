"""Contact model: survey respondents known to a tenant."""

from typing import Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel, TenantMixin


class Contact(TenantMixin, BaseModel):
    __tablename__ = "contacts"

    email: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(nullable=True)
    company: Mapped[Optional[str]] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(default="active")
    segment: Mapped[Optional[str]] = mapped_column(nullable=True)
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    custom_fields: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True, default=dict)
