"""Completion rules deciding whether a checklist may be finalized.

A field counts as reported when it carries any of: a status, non-blank
notes, photos, videos, units or bad elements. Items with quantity 0 are
never required. Items with quantity > 1 need every unit reported.
"""

from __future__ import annotations

from renocheck.schemas.checklist import (
    ChecklistType,
    DynamicItem,
    Furniture,
    InspectionDocument,
    QuantityItem,
    Question,
    Section,
    SectionId,
    UploadZone,
)
from renocheck.schemas.sync import IncompleteSection
from renocheck.services.checklist_converter import ZONE_NAME_BY_SECTION

SECTION_ORDER_INITIAL: tuple[SectionId, ...] = (
    SectionId.GENERAL_CONDITION,
    SectionId.ENTRY_HALLWAYS,
    SectionId.BEDROOMS,
    SectionId.LIVING_ROOM,
    SectionId.BATHROOMS,
    SectionId.KITCHEN,
    SectionId.EXTERIORS,
    SectionId.ENVIRONMENT,
)

SECTION_ORDER_FINAL: tuple[SectionId, ...] = (
    SectionId.ENVIRONMENT,
    SectionId.GENERAL_CONDITION,
    SectionId.ENTRY_HALLWAYS,
    SectionId.BEDROOMS,
    SectionId.LIVING_ROOM,
    SectionId.BATHROOMS,
    SectionId.KITCHEN,
    SectionId.EXTERIORS,
)

# Only these environment fields are mandatory; everything else there is optional.
ENVIRONMENT_REQUIRED_FIELDS = {
    "upload_zones": frozenset({"portal", "fachada"}),
    "questions": frozenset({"acceso-principal", "comunicaciones", "ascensor"}),
}


def section_order(checklist_type: ChecklistType) -> tuple[SectionId, ...]:
    if checklist_type == ChecklistType.RENO_INITIAL:
        return SECTION_ORDER_INITIAL
    return SECTION_ORDER_FINAL


# ── Reporting predicates ─────────────────────────────────

def _has_data(status, notes, photos=(), videos=(), units=(), bad_elements=()) -> bool:
    return bool(
        status is not None
        or (notes and notes.strip())
        or photos
        or videos
        or units
        or bad_elements
    )


def is_question_reported(question: Question) -> bool:
    return _has_data(question.status, question.notes, question.photos, bad_elements=question.bad_elements)


def is_zone_reported(zone: UploadZone) -> bool:
    return bool(zone.photos or zone.videos)


def is_item_reported(item: QuantityItem) -> bool:
    if item.quantity == 0:
        return True
    if item.quantity == 1:
        return _has_data(item.status, item.notes, item.photos)
    return all(_has_data(u.status, u.notes, u.photos) for u in item.units)


def is_furniture_reported(furniture: Furniture) -> bool:
    if not furniture.exists or furniture.question is None:
        return True
    return is_question_reported(furniture.question)


# ── Section checks ───────────────────────────────────────

def _check_owner(
    owner: Section | DynamicItem, section_id: SectionId, place: str,
    zones: list[UploadZone], questions: list[Question],
) -> IncompleteSection | None:
    for zone in zones:
        if not is_zone_reported(zone):
            return IncompleteSection(
                section_id=section_id, ref_id=zone.id,
                message=f"Faltan fotos o videos en la sección {place}",
            )
    for question in questions:
        if not is_question_reported(question):
            return IncompleteSection(
                section_id=section_id, ref_id=question.id,
                message=f"Faltan preguntas por responder en {place}",
            )
    for category, items in owner.item_categories():
        for item in items:
            if not is_item_reported(item):
                return IncompleteSection(
                    section_id=section_id, ref_id=item.id,
                    message=f"Falta seleccionar el estado de elementos de {category.label} en {place}",
                )
    if owner.furniture is not None and not is_furniture_reported(owner.furniture):
        return IncompleteSection(
            section_id=section_id, ref_id="mobiliario",
            message=f"Falta información sobre el mobiliario en {place}",
        )
    return None


def _check_environment(section: Section) -> IncompleteSection | None:
    required = Section(
        upload_zones=[z for z in section.upload_zones or [] if z.id in ENVIRONMENT_REQUIRED_FIELDS["upload_zones"]],
        questions=[q for q in section.questions or [] if q.id in ENVIRONMENT_REQUIRED_FIELDS["questions"]],
    )
    place = ZONE_NAME_BY_SECTION[SectionId.ENVIRONMENT]
    return _check_owner(required, SectionId.ENVIRONMENT, place, required.upload_zones, required.questions)


def check_section(section_id: SectionId, section: Section) -> IncompleteSection | None:
    """First missing field of one section, or None when it is fully reported."""
    if section_id == SectionId.ENVIRONMENT:
        return _check_environment(section)

    place = ZONE_NAME_BY_SECTION.get(section_id, section_id.value)
    problem = _check_owner(section, section_id, place, section.upload_zones or [], section.questions or [])
    if problem is not None:
        return problem
    for index, item in enumerate(section.dynamic_items or [], start=1):
        problem = _check_owner(item, section_id, f"{place} {index}", [item.upload_zone], item.questions)
        if problem is not None:
            return problem
    return None


# ── Document checks ──────────────────────────────────────

def _check_document_section(document: InspectionDocument, section_id: SectionId) -> IncompleteSection | None:
    section = document.sections.get(section_id)
    if section is None:
        place = ZONE_NAME_BY_SECTION.get(section_id, section_id.value)
        return IncompleteSection(
            section_id=section_id,
            message=f'La sección "{place}" no existe o no está inicializada.',
        )
    return check_section(section_id, section)


def first_incomplete_section(document: InspectionDocument) -> IncompleteSection | None:
    """Walk sections in checklist order; a missing section counts as incomplete."""
    for section_id in section_order(document.checklist_type):
        problem = _check_document_section(document, section_id)
        if problem is not None:
            return problem
    return None


def is_fully_reported(document: InspectionDocument) -> bool:
    return first_incomplete_section(document) is None


def unreported_sections(document: InspectionDocument) -> list[SectionId]:
    return [
        sid for sid in section_order(document.checklist_type)
        if _check_document_section(document, sid) is not None
    ]
