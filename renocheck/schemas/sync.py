from __future__ import annotations
from datetime import date
from enum import Enum
from pydantic import BaseModel, Field

from renocheck.schemas.checklist import InspectionDocument, SectionId


class IncompleteSection(BaseModel):
    section_id: SectionId
    ref_id: str | None = None
    message: str


class ElementFailure(BaseModel):
    zone_id: str
    element_name: str
    error: str


class SaveResult(BaseModel):
    section_id: SectionId | None = None
    saved: int = 0
    failed: list[ElementFailure] = Field(default_factory=list)
    uploaded: int = 0
    inline_fallback: int = 0
    storage_degraded: bool = False
    skipped: bool = False
    reload_error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.skipped and not self.failed and self.reload_error is None


class CrmSyncResult(BaseModel):
    success: bool
    record_id: str | None = None
    reason: str | None = None
    attempts: int = 0


class FinalizeFields(BaseModel):
    estimated_visit_date: date | None = None
    auto_visit_date: date | None = None
    next_reno_steps: str | None = None


class FinalizeOutcome(str, Enum):
    SYNCED = "synced"
    SAVED_NOT_SYNCED = "saved_not_synced"
    FAILED = "failed"


class FinalizeResult(BaseModel):
    outcome: FinalizeOutcome
    local_success: bool
    crm_success: bool = False
    crm_reason: str | None = None
    progress: float = 0.0
    message: str = ""
    save: SaveResult | None = None
    incomplete: IncompleteSection | None = None


class ChecklistRead(BaseModel):
    """Snapshot of a checklist session as served over HTTP."""

    state: str
    inspection_id: str | None = None
    current_section: SectionId | None = None
    progress: float
    finalize_progress: float
    complete: bool
    incomplete: IncompleteSection | None = None
    document: InspectionDocument | None = None


class FinalizeRequest(FinalizeFields):
    completed_by: str | None = None
    require_complete: bool | None = None


class ValidationRead(BaseModel):
    complete: bool
    incomplete: IncompleteSection | None = None
    unreported_sections: list[SectionId] = Field(default_factory=list)
