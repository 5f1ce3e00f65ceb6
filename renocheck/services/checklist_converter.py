"""Projection between checklist sections and zone/element rows.

Element naming:
    fotos-<uploadZoneId> / videos-<uploadZoneId>   upload zone media
    <questionId>                                   question
    <prefix>-<itemId>                              item (carries the quantity)
    <prefix>-<itemId>-<n>                          unit n of an item with quantity > 1
    mobiliario / mobiliario-detalle                furniture flag / furniture question
"""

from __future__ import annotations

import logging
import re
import uuid
from collections import defaultdict
from collections.abc import Iterable
from pathlib import PurePosixPath
from typing import Protocol

from renocheck.schemas.checklist import (
    ITEM_CATEGORIES,
    DynamicItem,
    FileAttachment,
    Furniture,
    ItemCategory,
    ItemStatus,
    ItemUnit,
    QuantityItem,
    Question,
    Section,
    SectionId,
    UploadZone,
    is_remote_url,
)
from renocheck.schemas.inspection import ElementUpsert, ZoneCreate
from renocheck.services.checklist_document import default_section, with_dynamic_count

logger = logging.getLogger(__name__)

ZONE_TYPE_BY_SECTION: dict[SectionId, str] = {
    SectionId.ENVIRONMENT: "entorno",
    SectionId.GENERAL_CONDITION: "distribucion",
    SectionId.ENTRY_HALLWAYS: "entrada",
    SectionId.BEDROOMS: "dormitorio",
    SectionId.LIVING_ROOM: "salon",
    SectionId.BATHROOMS: "bano",
    SectionId.KITCHEN: "cocina",
    SectionId.EXTERIORS: "exterior",
}
SECTION_BY_ZONE_TYPE = {v: k for k, v in ZONE_TYPE_BY_SECTION.items()}

ZONE_NAME_BY_SECTION: dict[SectionId, str] = {
    SectionId.ENVIRONMENT: "Entorno y Zonas Comunes",
    SectionId.GENERAL_CONDITION: "Estado General",
    SectionId.ENTRY_HALLWAYS: "Entrada y Pasillos",
    SectionId.BEDROOMS: "Habitación",
    SectionId.LIVING_ROOM: "Salón",
    SectionId.BATHROOMS: "Baño",
    SectionId.KITCHEN: "Cocina",
    SectionId.EXTERIORS: "Exteriores",
}

FURNITURE_FLAG = "mobiliario"
FURNITURE_DETAIL = "mobiliario-detalle"
BAD_ELEMENTS_MARKER = "Bad elements:"

_UNIT_SUFFIX = re.compile(r"^(?P<base>.+)-(?P<n>\d+)$")
_ZONE_INDEX = re.compile(r"(\d+)\s*$")
_BAD_ELEMENTS_LINE = re.compile(rf"(?:^|\n){re.escape(BAD_ELEMENTS_MARKER)}[ \t]*(?P<items>[^\n]*)\Z")


class ZoneLike(Protocol):
    id: str
    zone_type: str
    zone_name: str


class ElementLike(Protocol):
    zone_id: str
    element_name: str
    condition: str | None
    notes: str | None
    image_urls: list | None
    video_urls: list | None
    quantity: int | None
    exists: bool | None


def zone_type_for(section_id: SectionId | str) -> str | None:
    try:
        return ZONE_TYPE_BY_SECTION.get(SectionId(section_id))
    except ValueError:
        return None


# ── Notes ────────────────────────────────────────────────

def encode_notes(notes: str | None, bad_elements: list[str]) -> str | None:
    if bad_elements:
        return f"{notes or ''}\n{BAD_ELEMENTS_MARKER} {', '.join(bad_elements)}".strip()
    return notes or None


def decode_notes(raw: str | None) -> tuple[str | None, list[str]]:
    """Split stored notes into (free text, bad elements).

    Only a marker starting the last line of the notes counts; the same words
    inside free text stay part of the text.
    """
    match = _BAD_ELEMENTS_LINE.search(raw) if raw else None
    if match is None:
        return raw or None, []
    bad = [b.strip() for b in match["items"].split(",") if b.strip()]
    return raw[: match.start()].strip() or None, bad


# ── Section → rows ───────────────────────────────────────

def section_to_zone_rows(section_id: SectionId | str, section: Section, inspection_id: str) -> list[ZoneCreate]:
    zone_type = zone_type_for(section_id)
    if zone_type is None:
        logger.warning("No zone type mapped for section %r; skipping zone creation", section_id)
        return []
    name = ZONE_NAME_BY_SECTION[SectionId(section_id)]
    if section.is_dynamic:
        count = max(section.dynamic_count or 0, len(section.dynamic_items))
        return [
            ZoneCreate(inspection_id=inspection_id, zone_type=zone_type, zone_name=f"{name} {n}")
            for n in range(1, count + 1)
        ]
    return [ZoneCreate(inspection_id=inspection_id, zone_type=zone_type, zone_name=name)]


def _payloads(attachments: list[FileAttachment]) -> list[str] | None:
    return [a.payload for a in attachments] or None


def _question_row(question: Question, zone_id: str, element_name: str | None = None) -> ElementUpsert:
    return ElementUpsert(
        zone_id=zone_id,
        element_name=element_name or question.id,
        condition=question.status.value if question.status else None,
        notes=encode_notes(question.notes, question.bad_elements),
        image_urls=_payloads(question.photos),
    )


def _item_rows(category: ItemCategory, item: QuantityItem, zone_id: str) -> list[ElementUpsert]:
    name = f"{category.prefix}-{item.id}"
    rows = [ElementUpsert(
        zone_id=zone_id,
        element_name=name,
        condition=item.status.value if item.status else None,
        notes=item.notes or None,
        image_urls=_payloads(item.photos),
        quantity=item.quantity,
    )]
    if item.quantity > 1:
        rows.extend(
            ElementUpsert(
                zone_id=zone_id,
                element_name=f"{name}-{n}",
                condition=unit.status.value if unit.status else None,
                notes=unit.notes or None,
                image_urls=_payloads(unit.photos),
                quantity=1,
            )
            for n, unit in enumerate(item.units, start=1)
        )
    return rows


def _owner_rows(
    zone_id: str,
    upload_zones: Iterable[UploadZone],
    questions: Iterable[Question],
    owner: Section | DynamicItem,
) -> list[ElementUpsert]:
    rows: list[ElementUpsert] = []
    for zone in upload_zones:
        rows.append(ElementUpsert(
            zone_id=zone_id, element_name=f"fotos-{zone.id}", image_urls=_payloads(zone.photos),
        ))
        rows.append(ElementUpsert(
            zone_id=zone_id, element_name=f"videos-{zone.id}", video_urls=_payloads(zone.videos),
        ))
    rows.extend(_question_row(q, zone_id) for q in questions)
    for category, items in owner.item_categories():
        for item in items:
            rows.extend(_item_rows(category, item, zone_id))
    if owner.furniture is not None:
        rows.append(ElementUpsert(zone_id=zone_id, element_name=FURNITURE_FLAG, exists=owner.furniture.exists))
        if owner.furniture.question is not None:
            rows.append(_question_row(owner.furniture.question, zone_id, FURNITURE_DETAIL))
    return rows


def section_to_element_rows(section_id: SectionId | str, section: Section, zone_id: str) -> list[ElementUpsert]:
    """Rows for the section-level fields; dynamic items are handled per item."""
    return _owner_rows(zone_id, section.upload_zones or [], section.questions or [], section)


def dynamic_item_to_element_rows(item: DynamicItem, zone_id: str) -> list[ElementUpsert]:
    return _owner_rows(zone_id, [item.upload_zone], item.questions, item)


def order_dynamic_zones(zones: Iterable[ZoneLike]) -> list[ZoneLike]:
    """Order by the trailing number of the zone name ("Habitación 2"), keeping input order on ties."""
    def key(zone):
        match = _ZONE_INDEX.search(zone.zone_name or "")
        return int(match.group(1)) if match else 10**6

    return sorted(zones, key=key)


def assign_section_elements(
    section_id: SectionId | str, section: Section, zones: Iterable[ZoneLike],
) -> dict[str, list[ElementUpsert]]:
    """Element rows for one section keyed by the zone they belong to."""
    zone_type = zone_type_for(section_id)
    if zone_type is None:
        logger.warning("No zone type mapped for section %r; nothing to persist", section_id)
        return {}
    matching = [z for z in zones if z.zone_type == zone_type]
    if not matching:
        logger.warning("No %s zones exist for section %s", zone_type, section_id)
        return {}

    if not section.is_dynamic:
        zone_id = matching[0].id
        return {zone_id: section_to_element_rows(section_id, section, zone_id)}

    ordered = order_dynamic_zones(matching)
    assigned: dict[str, list[ElementUpsert]] = {}
    for index, item in enumerate(section.dynamic_items):
        if index >= len(ordered):
            logger.warning("Dynamic item %s of %s has no zone; skipping", item.id, section_id)
            continue
        zone_id = ordered[index].id
        assigned[zone_id] = dynamic_item_to_element_rows(item, zone_id)
    return assigned


# ── Rows → sections ──────────────────────────────────────

def _attachment(payload: str) -> FileAttachment:
    name = PurePosixPath(payload).name if is_remote_url(payload) else ""
    return FileAttachment(id=str(uuid.uuid5(uuid.NAMESPACE_URL, payload)), payload=payload, name=name)


def _attachments(payloads: list | None) -> list[FileAttachment]:
    return [_attachment(p) for p in payloads or []]


def _status(condition: str | None) -> ItemStatus | None:
    if condition is None:
        return None
    try:
        return ItemStatus(condition)
    except ValueError:
        logger.debug("Unknown condition %r ignored", condition)
        return None


def _question_from_row(question_id: str, element: ElementLike) -> Question:
    notes, bad = decode_notes(element.notes)
    return Question(
        id=question_id,
        status=_status(element.condition),
        notes=notes,
        photos=_attachments(element.image_urls),
        bad_elements=bad,
    )


def _split_item_name(name: str) -> tuple[ItemCategory, str] | None:
    for category in ITEM_CATEGORIES:
        prefix = f"{category.prefix}-"
        if name.startswith(prefix):
            return category, name[len(prefix):]
    return None


def _upsert_by_id(items: list, new) -> None:
    for i, existing in enumerate(items):
        if existing.id == new.id:
            items[i] = new
            return
    items.append(new)


def _known_ids(owner: Section | DynamicItem) -> set[tuple[str, str]]:
    return {(category.field, item.id) for category, items in owner.item_categories() for item in items}


def _unit_from_row(element: ElementLike) -> ItemUnit:
    return ItemUnit(
        status=_status(element.condition),
        notes=decode_notes(element.notes)[0],
        photos=_attachments(element.image_urls),
    )


def _apply_items(owner: Section | DynamicItem, item_rows: list[tuple[ItemCategory, str, ElementLike]]) -> None:
    """Rebuild quantity items; the parent row's quantity wins over leftover unit rows."""
    known = _known_ids(owner)
    row_keys = {(category.field, rest) for category, rest, _ in item_rows}
    parents: dict[tuple[str, str], ElementLike] = {}
    units: dict[tuple[str, str], dict[int, ElementLike]] = defaultdict(dict)
    for category, rest, element in item_rows:
        key = (category.field, rest)
        match = _UNIT_SUFFIX.match(rest)
        base = (category.field, match["base"]) if match else None
        if base is not None and key not in known and (base in known or base in row_keys):
            units[base][int(match["n"])] = element
        else:
            parents[key] = element

    for key in [*parents, *(k for k in units if k not in parents)]:
        field, item_id = key
        parent = parents.get(key)
        unit_rows = units.get(key, {})
        if parent is not None and parent.quantity is not None:
            quantity = parent.quantity
        else:
            quantity = max(unit_rows, default=1)
        item = QuantityItem(
            id=item_id,
            quantity=quantity,
            status=_status(parent.condition) if parent is not None else None,
            notes=decode_notes(parent.notes)[0] if parent is not None else None,
            photos=_attachments(parent.image_urls) if parent is not None else [],
            units=[
                _unit_from_row(unit_rows[n]) if n in unit_rows else ItemUnit()
                for n in range(1, quantity + 1)
            ] if quantity > 1 else [],
        )
        items = getattr(owner, field)
        if items is None:
            items = []
            setattr(owner, field, items)
        _upsert_by_id(items, item)


def _apply_elements(owner: Section | DynamicItem, elements: Iterable[ElementLike]) -> None:
    item_rows: list[tuple[ItemCategory, str, ElementLike]] = []
    for element in elements:
        name = element.element_name
        if name.startswith("fotos-") or name.startswith("videos-"):
            kind, _, zone_key = name.partition("-")
            zone = _upload_zone(owner, zone_key)
            if kind == "fotos":
                zone.photos = _attachments(element.image_urls)
            else:
                zone.videos = _attachments(element.video_urls)
        elif name == FURNITURE_FLAG:
            if owner.furniture is None:
                owner.furniture = Furniture(question=Question(id=FURNITURE_FLAG))
            owner.furniture.exists = bool(element.exists)
        elif name == FURNITURE_DETAIL:
            if owner.furniture is None:
                owner.furniture = Furniture(exists=True)
            owner.furniture.question = _question_from_row(FURNITURE_FLAG, element)
        elif (split := _split_item_name(name)) is not None:
            item_rows.append((split[0], split[1], element))
        else:
            if owner.questions is None:
                owner.questions = []
            _upsert_by_id(owner.questions, _question_from_row(name, element))
    _apply_items(owner, item_rows)


def _upload_zone(owner: Section | DynamicItem, zone_key: str) -> UploadZone:
    if isinstance(owner, DynamicItem):
        return owner.upload_zone
    if owner.upload_zones is None:
        owner.upload_zones = []
    for zone in owner.upload_zones:
        if zone.id == zone_key:
            return zone
    zone = UploadZone(id=zone_key)
    owner.upload_zones.append(zone)
    return zone


def rows_to_sections(
    zones: Iterable[ZoneLike],
    elements: Iterable[ElementLike],
    bedroom_count: int = 0,
    bathroom_count: int = 0,
    has_elevator: bool | None = None,
) -> dict[SectionId, Section]:
    """Rebuild sections from stored rows, on top of the default templates.

    Only sections that have at least one zone are returned. Dynamic sections
    are sized to the larger of the property count and the zones present.
    """
    by_zone: dict[str, list[ElementLike]] = defaultdict(list)
    for element in elements:
        by_zone[element.zone_id].append(element)

    by_type: dict[str, list[ZoneLike]] = defaultdict(list)
    for zone in zones:
        by_type[zone.zone_type].append(zone)

    sections: dict[SectionId, Section] = {}
    for zone_type, typed_zones in by_type.items():
        section_id = SECTION_BY_ZONE_TYPE.get(zone_type)
        if section_id is None:
            logger.warning("Ignoring zones of unmapped type %r", zone_type)
            continue

        if section_id in (SectionId.BEDROOMS, SectionId.BATHROOMS):
            count = bedroom_count if section_id == SectionId.BEDROOMS else bathroom_count
            ordered = order_dynamic_zones(typed_zones)
            section = with_dynamic_count(
                default_section(section_id), section_id, max(count, len(ordered)),
            ).model_copy(deep=True)
            for item, zone in zip(section.dynamic_items, ordered):
                _apply_elements(item, by_zone.get(zone.id, []))
        else:
            section = default_section(section_id, has_elevator=has_elevator)
            for zone in typed_zones:
                _apply_elements(section, by_zone.get(zone.id, []))
        sections[section_id] = Section.model_validate(section.model_dump())
    return sections
