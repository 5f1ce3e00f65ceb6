"""Pydantic request/response schemas."""

from renocheck.schemas.property import PropertyCreate, PropertyRead
from renocheck.schemas.checklist import (
    ChecklistType, SectionId, ItemStatus, FileAttachment, UploadZone, Question,
    ItemUnit, QuantityItem, Furniture, DynamicItem, Section, InspectionDocument,
)
from renocheck.schemas.inspection import (
    SchemaCapabilities, InspectionRead, ZoneCreate, ZoneRead, ElementUpsert, ElementRead,
)
from renocheck.schemas.sync import (
    IncompleteSection, ElementFailure, SaveResult, CrmSyncResult,
    FinalizeFields, FinalizeOutcome, FinalizeResult, ChecklistRead,
    FinalizeRequest, ValidationRead,
)

__all__ = [
    "PropertyCreate", "PropertyRead",
    "ChecklistType", "SectionId", "ItemStatus", "FileAttachment", "UploadZone", "Question",
    "ItemUnit", "QuantityItem", "Furniture", "DynamicItem", "Section", "InspectionDocument",
    "SchemaCapabilities", "InspectionRead", "ZoneCreate", "ZoneRead", "ElementUpsert", "ElementRead",
    "IncompleteSection", "ElementFailure", "SaveResult", "CrmSyncResult",
    "FinalizeFields", "FinalizeOutcome", "FinalizeResult", "ChecklistRead",
    "FinalizeRequest", "ValidationRead",
]
