from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from renocheck.models.base import Base, ULIDMixin


class Inspection(Base, ULIDMixin):
    """One inspection run of a property.

    Reads and inserts that must survive legacy deployments go through Core
    statements with an explicit column list (see ``crud.find_inspection``),
    since ``inspection_type`` may be missing from older schemas.
    """

    __tablename__ = "inspections"

    property_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("properties.id", ondelete="CASCADE"), index=True,
    )
    inspection_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    inspection_status: Mapped[str] = mapped_column(String(20), default="in_progress")
    has_elevator: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    public_link_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    property = relationship("Property", back_populates="inspections")
    zones = relationship(
        "Zone", back_populates="inspection", cascade="all, delete-orphan", passive_deletes=True,
    )
