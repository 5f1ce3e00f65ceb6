from __future__ import annotations

from datetime import date

from sqlalchemy import String, Integer, Boolean, Date, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from renocheck.models.base import Base, ULIDMixin


class Property(Base, ULIDMixin):
    """A property under renovation. ``unique_id`` is the CRM business key."""

    __tablename__ = "properties"

    label: Mapped[str] = mapped_column(String(255))
    address: Mapped[str] = mapped_column(String(500), default="")
    bedrooms: Mapped[int] = mapped_column(Integer, default=0)
    bathrooms: Mapped[int] = mapped_column(Integer, default=0)
    has_elevator: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    unique_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    crm_record_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reno_phase: Mapped[str | None] = mapped_column(String(50), nullable=True)
    set_up_status: Mapped[str | None] = mapped_column(String(100), nullable=True)
    estimated_visit_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_reno_steps: Mapped[str | None] = mapped_column(Text, nullable=True)

    inspections = relationship(
        "Inspection", back_populates="property", cascade="all, delete-orphan", passive_deletes=True,
    )
