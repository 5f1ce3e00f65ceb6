"""Checklist document model: the nested draft edited section by section.

A ``Section`` carries one optional field per capability. ``None`` means the
section does not have that capability at all, an empty list means it has it
but nothing is filled in yet.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, Field, field_validator, model_validator
from ulid import ULID

logger = logging.getLogger(__name__)


class ChecklistType(str, Enum):
    RENO_INITIAL = "reno_initial"
    RENO_INTERMEDIATE = "reno_intermediate"
    RENO_FINAL = "reno_final"

    @property
    def inspection_type(self) -> str:
        return INSPECTION_TYPE_BY_CHECKLIST[self]


INSPECTION_TYPE_BY_CHECKLIST = {
    ChecklistType.RENO_INITIAL: "initial",
    ChecklistType.RENO_INTERMEDIATE: "intermediate",
    ChecklistType.RENO_FINAL: "final",
}


class SectionId(str, Enum):
    ENVIRONMENT = "entorno-zonas-comunes"
    GENERAL_CONDITION = "estado-general"
    ENTRY_HALLWAYS = "entrada-pasillos"
    BEDROOMS = "habitaciones"
    LIVING_ROOM = "salon"
    BATHROOMS = "banos"
    KITCHEN = "cocina"
    EXTERIORS = "exteriores"


DYNAMIC_SECTIONS = frozenset({SectionId.BEDROOMS, SectionId.BATHROOMS})


class ItemStatus(str, Enum):
    GOOD = "buen_estado"
    NEEDS_REPAIR = "necesita_reparacion"
    NEEDS_REPLACEMENT = "necesita_reemplazo"
    NOT_APPLICABLE = "no_aplica"


def is_remote_url(payload: str) -> bool:
    """True once an attachment payload has been replaced by its uploaded URL."""
    return payload.startswith(("http://", "https://"))


def _new_attachment_id() -> str:
    return str(ULID())


class FileAttachment(BaseModel):
    id: str = Field(default_factory=_new_attachment_id)
    payload: str
    name: str = ""
    content_type: str | None = None

    @property
    def is_uploaded(self) -> bool:
        return is_remote_url(self.payload)


class UploadZone(BaseModel):
    id: str
    photos: list[FileAttachment] = Field(default_factory=list)
    videos: list[FileAttachment] = Field(default_factory=list)


class Question(BaseModel):
    id: str
    status: ItemStatus | None = None
    notes: str | None = None
    photos: list[FileAttachment] = Field(default_factory=list)
    bad_elements: list[str] = Field(default_factory=list)


class ItemUnit(BaseModel):
    status: ItemStatus | None = None
    notes: str | None = None
    photos: list[FileAttachment] = Field(default_factory=list)


class QuantityItem(BaseModel):
    """A countable fixture. With ``quantity > 1`` each unit is reported on its own."""

    id: str
    quantity: int = Field(default=0, ge=0)
    status: ItemStatus | None = None
    notes: str | None = None
    photos: list[FileAttachment] = Field(default_factory=list)
    units: list[ItemUnit] = Field(default_factory=list)

    @model_validator(mode="after")
    def _normalise_units(self) -> QuantityItem:
        if self.quantity > 1:
            units = list(self.units[: self.quantity])
            units.extend(ItemUnit() for _ in range(self.quantity - len(units)))
            self.units = units
        else:
            self.units = []
        return self


class Furniture(BaseModel):
    exists: bool = False
    question: Question | None = None


class ItemCategory(NamedTuple):
    field: str
    prefix: str
    label: str


ITEM_CATEGORIES: tuple[ItemCategory, ...] = (
    ItemCategory("carpentry_items", "carpentry", "carpintería"),
    ItemCategory("climatization_items", "climatization", "climatización"),
    ItemCategory("storage_items", "storage", "almacenamiento"),
    ItemCategory("appliances_items", "appliance", "electrodomésticos"),
    ItemCategory("security_items", "security", "seguridad"),
    ItemCategory("systems_items", "system", "sistemas"),
)


def _duplicates(ids: list[str]) -> set[str]:
    return {i for i, n in Counter(ids).items() if n > 1}


class _ItemCategories(BaseModel):
    carpentry_items: list[QuantityItem] | None = None
    climatization_items: list[QuantityItem] | None = None
    storage_items: list[QuantityItem] | None = None
    appliances_items: list[QuantityItem] | None = None
    security_items: list[QuantityItem] | None = None
    systems_items: list[QuantityItem] | None = None

    def item_categories(self):
        """Yield ``(category, items)`` for every category this owner has."""
        for category in ITEM_CATEGORIES:
            items = getattr(self, category.field)
            if items is not None:
                yield category, items

    def _check_unique_ids(self, questions: list[Question] | None) -> None:
        if questions is not None:
            dup = _duplicates([q.id for q in questions])
            if dup:
                raise ValueError(f"duplicate question ids: {sorted(dup)}")
        for category, items in self.item_categories():
            dup = _duplicates([i.id for i in items])
            if dup:
                raise ValueError(f"duplicate {category.prefix} ids: {sorted(dup)}")


class DynamicItem(_ItemCategories):
    """One bedroom or bathroom."""

    id: str
    upload_zone: UploadZone
    questions: list[Question] = Field(default_factory=list)
    furniture: Furniture | None = None

    @model_validator(mode="after")
    def _validate_ids(self) -> DynamicItem:
        self._check_unique_ids(self.questions)
        return self


class Section(_ItemCategories):
    upload_zones: list[UploadZone] | None = None
    questions: list[Question] | None = None
    dynamic_items: list[DynamicItem] | None = None
    dynamic_count: int | None = Field(default=None, ge=0)
    furniture: Furniture | None = None

    @model_validator(mode="after")
    def _validate_shape(self) -> Section:
        self._check_unique_ids(self.questions)
        if self.upload_zones is not None:
            dup = _duplicates([z.id for z in self.upload_zones])
            if dup:
                raise ValueError(f"duplicate upload zone ids: {sorted(dup)}")
        if self.dynamic_items is not None and self.dynamic_count is None:
            self.dynamic_count = len(self.dynamic_items)
        if self.dynamic_count is not None and self.dynamic_items is None:
            raise ValueError("dynamic_count requires dynamic_items")
        return self

    @property
    def is_dynamic(self) -> bool:
        return self.dynamic_items is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InspectionDocument(BaseModel):
    property_id: str
    checklist_type: ChecklistType
    sections: dict[SectionId, Section] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=_utcnow)

    @field_validator("sections", mode="before")
    @classmethod
    def _drop_unknown_sections(cls, value):
        if not isinstance(value, dict):
            return value
        known = {s.value for s in SectionId}
        kept = {}
        for key, section in value.items():
            raw = key.value if isinstance(key, SectionId) else key
            if raw in known:
                kept[raw] = section
            else:
                logger.debug("Dropping unknown section id %r", key)
        return kept
