"""Build and edit checklist documents.

Every function here is pure: documents and sections are treated as
immutable values and each edit returns a new object.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any

from renocheck.schemas.checklist import (
    ChecklistType,
    DynamicItem,
    FileAttachment,
    Furniture,
    InspectionDocument,
    ItemStatus,
    QuantityItem,
    Question,
    Section,
    SectionId,
    UploadZone,
)

logger = logging.getLogger(__name__)


# ── Default templates ────────────────────────────────────

def _questions(*ids: str) -> list[Question]:
    return [Question(id=i) for i in ids]


def _items(*ids: str) -> list[QuantityItem]:
    return [QuantityItem(id=i) for i in ids]


def _zones(*ids: str) -> list[UploadZone]:
    return [UploadZone(id=i) for i in ids]


def _furniture() -> Furniture:
    return Furniture(exists=False, question=Question(id="mobiliario"))


def _environment(has_elevator: bool | None) -> Section:
    questions = _questions("acceso-principal", "acabados", "comunicaciones", "electricidad", "carpinteria")
    elevator = Question(id="ascensor")
    if has_elevator is True:
        elevator.status = ItemStatus.GOOD
    elif has_elevator is False:
        elevator.status = ItemStatus.NOT_APPLICABLE
    questions.append(elevator)
    return Section(upload_zones=_zones("portal", "fachada", "entorno"), questions=questions)


def _general_condition() -> Section:
    return Section(
        upload_zones=_zones("perspectiva-general"),
        questions=_questions("acabados", "electricidad"),
        climatization_items=_items("radiadores", "split-ac", "calentador-agua", "calefaccion-conductos"),
    )


def _entry_hallways() -> Section:
    return Section(
        upload_zones=_zones("cuadro-general-electrico", "entrada-vivienda-pasillos"),
        questions=_questions("acabados", "electricidad"),
        carpentry_items=_items("ventanas", "persianas", "armarios"),
        climatization_items=_items("radiadores", "split-ac"),
        furniture=_furniture(),
    )


def _living_room() -> Section:
    return Section(
        upload_zones=_zones("fotos-video-salon"),
        questions=_questions("acabados", "electricidad", "puerta-entrada"),
        carpentry_items=_items("ventanas", "persianas", "armarios"),
        climatization_items=_items("radiadores", "split-ac"),
        furniture=_furniture(),
    )


def _kitchen() -> Section:
    return Section(
        upload_zones=_zones("fotos-video-cocina"),
        questions=_questions("acabados", "mobiliario-fijo", "agua-drenaje", "puerta-entrada"),
        carpentry_items=_items("ventanas", "persianas"),
        storage_items=_items("armarios-despensa", "cuarto-lavado"),
        appliances_items=_items(
            "placa-gas", "placa-vitro-induccion", "campana-extractora", "horno",
            "nevera", "lavadora", "lavavajillas", "microondas",
        ),
    )


def _exteriors() -> Section:
    return Section(
        upload_zones=_zones("fotos-video-exterior"),
        questions=_questions("acabados-exteriores"),
        security_items=_items("barandillas", "rejas"),
        systems_items=_items("tendedero-exterior", "toldos"),
    )


def default_dynamic_item(section_id: SectionId, index: int) -> DynamicItem:
    """Blank bedroom or bathroom number ``index`` (1-based)."""
    base = DynamicItem(
        id=f"{section_id.value}-{index}",
        upload_zone=UploadZone(id=f"fotos-video-{section_id.value}-{index}"),
    )
    if section_id == SectionId.BEDROOMS:
        base.questions = _questions("acabados", "electricidad", "puerta-entrada")
        base.carpentry_items = _items("ventanas", "persianas", "armarios")
        base.climatization_items = _items("radiadores", "split-ac")
        base.furniture = Furniture(exists=True, question=Question(id="mobiliario"))
    elif section_id == SectionId.BATHROOMS:
        base.questions = _questions(
            "acabados", "agua-drenaje", "sanitarios", "griferia-ducha", "ventilacion", "puerta-entrada",
        )
        base.carpentry_items = _items("ventanas", "persianas")
    return base


def _dynamic(section_id: SectionId, count: int) -> Section:
    return Section(
        dynamic_items=[default_dynamic_item(section_id, n) for n in range(1, count + 1)],
        dynamic_count=count,
    )


def default_section(
    section_id: SectionId, bedroom_count: int = 0, bathroom_count: int = 0,
    has_elevator: bool | None = None,
) -> Section:
    if section_id == SectionId.ENVIRONMENT:
        return _environment(has_elevator)
    if section_id == SectionId.BEDROOMS:
        return _dynamic(section_id, bedroom_count)
    if section_id == SectionId.BATHROOMS:
        return _dynamic(section_id, bathroom_count)
    return _FIXED_TEMPLATES[section_id]()


_FIXED_TEMPLATES = {
    SectionId.GENERAL_CONDITION: _general_condition,
    SectionId.ENTRY_HALLWAYS: _entry_hallways,
    SectionId.LIVING_ROOM: _living_room,
    SectionId.KITCHEN: _kitchen,
    SectionId.EXTERIORS: _exteriors,
}


def with_dynamic_count(section: Section, section_id: SectionId, count: int) -> Section:
    """Pad a dynamic section with blank items up to ``count``; existing items are kept."""
    items = list(section.dynamic_items or [])
    for n in range(len(items) + 1, count + 1):
        items.append(default_dynamic_item(section_id, n))
    return section.model_copy(update={"dynamic_items": items, "dynamic_count": len(items)})


# ── Document operations ──────────────────────────────────

def _parse_section_id(section_id: SectionId | str) -> SectionId | None:
    try:
        return SectionId(section_id)
    except ValueError:
        logger.debug("Ignoring unknown section id %r", section_id)
        return None


def create_checklist(
    property_id: str,
    checklist_type: ChecklistType,
    sections: dict[SectionId | str, Section | dict] | None = None,
    bedroom_count: int = 0,
    bathroom_count: int = 0,
    has_elevator: bool | None = None,
) -> InspectionDocument:
    """New document with every section present; ``sections`` overrides defaults sparsely."""
    overrides: dict[SectionId, Section] = {}
    for key, value in (sections or {}).items():
        sid = _parse_section_id(key)
        if sid is not None:
            overrides[sid] = Section.model_validate(value)

    built = {
        sid: overrides.get(sid) or default_section(sid, bedroom_count, bathroom_count, has_elevator)
        for sid in SectionId
    }
    return InspectionDocument(property_id=property_id, checklist_type=checklist_type, sections=built)


def update_section(
    document: InspectionDocument,
    section_id: SectionId | str,
    partial: Section | dict[str, Any],
) -> InspectionDocument:
    """Shallow-merge ``partial`` into one section and return the new document.

    Top-level section fields in ``partial`` replace the current ones whole.
    Unknown section ids leave the document untouched.
    """
    sid = _parse_section_id(section_id)
    if sid is None:
        return document

    if isinstance(partial, Section):
        partial = partial.model_dump(exclude_unset=True)
    current = document.sections.get(sid)
    base = current.model_dump() if current is not None else {}
    if "dynamic_items" in partial and "dynamic_count" not in partial:
        base.pop("dynamic_count", None)

    merged = Section.model_validate({**base, **partial})
    sections = dict(document.sections)
    sections[sid] = merged
    return document.model_copy(update={
        "sections": sections,
        "last_updated": datetime.now(timezone.utc),
    })


# ── Attachments ──────────────────────────────────────────

def _attachment_lists(owner: Section | DynamicItem) -> Iterator[list[FileAttachment]]:
    if isinstance(owner, DynamicItem):
        zones, questions = [owner.upload_zone], owner.questions
    else:
        zones, questions = owner.upload_zones or [], owner.questions or []
    for zone in zones:
        yield zone.photos
        yield zone.videos
    for question in questions:
        yield question.photos
    for _, items in owner.item_categories():
        for item in items:
            yield item.photos
            for unit in item.units:
                yield unit.photos
    if owner.furniture is not None and owner.furniture.question is not None:
        yield owner.furniture.question.photos


def iter_attachments(section: Section) -> Iterator[tuple[int | None, FileAttachment]]:
    """Yield ``(dynamic_item_index, attachment)``; the index is None for section-level files."""
    for attachments in _attachment_lists(section):
        for att in attachments:
            yield None, att
    for index, item in enumerate(section.dynamic_items or []):
        for attachments in _attachment_lists(item):
            for att in attachments:
                yield index, att


def substitute_attachment_payloads(section: Section, urls: dict[str, str]) -> Section:
    """Copy of ``section`` with payloads replaced by uploaded URLs, matched on attachment id."""
    if not urls:
        return section
    updated = section.model_copy(deep=True)
    owners: list[Section | DynamicItem] = [updated, *(updated.dynamic_items or [])]
    for owner in owners:
        for attachments in _attachment_lists(owner):
            for i, att in enumerate(attachments):
                if att.id in urls:
                    attachments[i] = att.model_copy(update={"payload": urls[att.id]})
    return updated
