from __future__ import annotations

from sqlalchemy import String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from renocheck.models.base import Base, ULIDMixin


class Zone(Base, ULIDMixin):
    __tablename__ = "zones"

    inspection_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("inspections.id", ondelete="CASCADE"), index=True,
    )
    zone_type: Mapped[str] = mapped_column(String(30))
    zone_name: Mapped[str] = mapped_column(String(100))

    inspection = relationship("Inspection", back_populates="zones")
    elements = relationship(
        "Element", back_populates="zone", cascade="all, delete-orphan", passive_deletes=True,
    )
