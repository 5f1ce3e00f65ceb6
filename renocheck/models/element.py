from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Integer, Boolean, Text, JSON, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from renocheck.models.base import Base, ULIDMixin, utcnow


class Element(Base, ULIDMixin):
    """A single reportable field of a zone, keyed by (zone_id, element_name)."""

    __tablename__ = "elements"
    __table_args__ = (UniqueConstraint("zone_id", "element_name", name="uq_elements_zone_element"),)

    zone_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("zones.id", ondelete="CASCADE"), index=True,
    )
    element_name: Mapped[str] = mapped_column(String(150))
    condition: Mapped[str | None] = mapped_column(String(30), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_urls: Mapped[list | None] = mapped_column(JSON, nullable=True)
    video_urls: Mapped[list | None] = mapped_column(JSON, nullable=True)
    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    exists: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    zone = relationship("Zone", back_populates="elements")
