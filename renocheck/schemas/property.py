from __future__ import annotations
from datetime import date, datetime
from pydantic import BaseModel, Field


class PropertyCreate(BaseModel):
    label: str
    address: str = ""
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    has_elevator: bool | None = None
    unique_id: str | None = None
    crm_record_id: str | None = None


class PropertyRead(BaseModel):
    id: str
    label: str
    address: str = ""
    bedrooms: int
    bathrooms: int
    has_elevator: bool | None = None
    unique_id: str | None = None
    crm_record_id: str | None = None
    reno_phase: str | None = None
    set_up_status: str | None = None
    estimated_visit_date: date | None = None
    next_reno_steps: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
