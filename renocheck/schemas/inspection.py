from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel, Field


class SchemaCapabilities(BaseModel):
    """Columns actually present on the deployed ``inspections`` table."""

    inspection_columns: frozenset[str] = frozenset()

    @property
    def has_inspection_type(self) -> bool:
        return "inspection_type" in self.inspection_columns


class InspectionRead(BaseModel):
    id: str
    property_id: str
    inspection_type: str | None = None
    inspection_status: str = "in_progress"
    has_elevator: bool | None = None
    public_link_id: str | None = None
    created_by: str | None = None
    completed_by: str | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ZoneCreate(BaseModel):
    inspection_id: str
    zone_type: str
    zone_name: str


class ZoneRead(BaseModel):
    id: str
    inspection_id: str
    zone_type: str
    zone_name: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ElementUpsert(BaseModel):
    zone_id: str
    element_name: str
    condition: str | None = None
    notes: str | None = None
    image_urls: list[str] | None = None
    video_urls: list[str] | None = None
    quantity: int | None = None
    exists: bool | None = None


class ElementRead(ElementUpsert):
    id: str
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
