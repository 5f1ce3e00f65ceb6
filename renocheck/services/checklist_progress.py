"""Progress metrics shown while editing and pushed to the CRM on finalize.

These are looser than ``checklist_validation``: a section
counts toward ``finalize_progress`` as soon as anything in it is reported,
so 100% progress does not imply the checklist can be finalized.
"""

from __future__ import annotations

from renocheck.schemas.checklist import DynamicItem, InspectionDocument, Section, SectionId
from renocheck.services.checklist_validation import (
    is_furniture_reported,
    is_item_reported,
    is_question_reported,
    is_zone_reported,
    section_order,
)


def _owner_groups(owner: Section | DynamicItem) -> list[tuple[int, int]]:
    """(reported, total) per field group of one section or dynamic item."""
    if isinstance(owner, DynamicItem):
        zones, questions = [owner.upload_zone], owner.questions
    else:
        zones, questions = owner.upload_zones or [], owner.questions or []
    groups = []
    if zones:
        groups.append((sum(is_zone_reported(z) for z in zones), len(zones)))
    if questions:
        groups.append((sum(is_question_reported(q) for q in questions), len(questions)))
    for _, items in owner.item_categories():
        counted = [i for i in items if i.quantity > 0]
        if counted:
            groups.append((sum(is_item_reported(i) for i in counted), len(counted)))
    if owner.furniture is not None and owner.furniture.exists:
        groups.append((int(is_furniture_reported(owner.furniture)), 1))
    return groups


def _section_groups(section: Section) -> list[tuple[int, int]]:
    groups = _owner_groups(section)
    for item in section.dynamic_items or []:
        groups.extend(_owner_groups(item))
    return groups


def section_progress(section: Section) -> int:
    """Percentage of field groups fully reported, rounded to an int."""
    groups = _section_groups(section)
    if not groups:
        return 0
    complete = sum(1 for reported, total in groups if reported == total)
    return round(complete * 100 / len(groups))


def overall_progress(document: InspectionDocument) -> int:
    """Average of ``section_progress`` across every section of the checklist."""
    order = section_order(document.checklist_type)
    scores = [section_progress(document.sections[s]) if s in document.sections else 0 for s in order]
    return round(sum(scores) / len(order))


def section_has_content(section: Section) -> bool:
    return any(reported > 0 for reported, _ in _section_groups(section))


def finalize_progress(document: InspectionDocument) -> int:
    """Percentage of sections with any reported content."""
    order: tuple[SectionId, ...] = section_order(document.checklist_type)
    touched = sum(1 for s in order if s in document.sections and section_has_content(document.sections[s]))
    return round(touched * 100 / len(order))
