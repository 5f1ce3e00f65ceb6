from renocheck.schemas import ChecklistType, FileAttachment, ItemStatus, Section, SectionId, UploadZone
from renocheck.services.checklist_document import (
    create_checklist,
    iter_attachments,
    substitute_attachment_payloads,
    update_section,
    with_dynamic_count,
)


def _doc(**kwargs):
    return create_checklist("p1", ChecklistType.RENO_INITIAL, **kwargs)


def test_create_checklist_has_every_section():
    doc = _doc()
    assert set(doc.sections) == set(SectionId)


def test_dynamic_sections_follow_property_counts():
    doc = _doc(bedroom_count=2, bathroom_count=1)
    bedrooms = doc.sections[SectionId.BEDROOMS]
    bathrooms = doc.sections[SectionId.BATHROOMS]
    assert [i.id for i in bedrooms.dynamic_items] == ["habitaciones-1", "habitaciones-2"]
    assert bedrooms.dynamic_count == 2
    assert len(bathrooms.dynamic_items) == 1
    assert bathrooms.dynamic_items[0].upload_zone.id == "fotos-video-banos-1"


def test_overrides_are_sparse_and_unknown_ids_ignored():
    custom = Section(questions=[])
    doc = _doc(sections={"salon": custom, "garaje": Section()})
    assert doc.sections[SectionId.LIVING_ROOM].questions == []
    assert doc.sections[SectionId.KITCHEN].appliances_items
    assert "garaje" not in {s.value for s in doc.sections}


def test_elevator_question_seeded_from_property():
    with_lift = _doc(has_elevator=True).sections[SectionId.ENVIRONMENT]
    without = _doc(has_elevator=False).sections[SectionId.ENVIRONMENT]
    assert next(q for q in with_lift.questions if q.id == "ascensor").status == ItemStatus.GOOD
    assert next(q for q in without.questions if q.id == "ascensor").status == ItemStatus.NOT_APPLICABLE


def test_update_section_merges_shallowly_and_returns_new_document():
    doc = _doc()
    zones = [{"id": "fotos-video-salon", "photos": [{"payload": "https://cdn/a.jpg"}]}]
    updated = update_section(doc, "salon", {"upload_zones": zones})

    assert updated is not doc
    assert updated.last_updated >= doc.last_updated
    salon = updated.sections[SectionId.LIVING_ROOM]
    assert salon.upload_zones[0].photos[0].payload == "https://cdn/a.jpg"
    # untouched fields survive
    assert [q.id for q in salon.questions] == ["acabados", "electricidad", "puerta-entrada"]
    # original is unchanged
    assert doc.sections[SectionId.LIVING_ROOM].upload_zones[0].photos == []


def test_update_section_unknown_id_is_noop():
    doc = _doc()
    assert update_section(doc, "garaje", {"questions": []}) is doc


def test_update_dynamic_items_recomputes_count():
    doc = _doc(bedroom_count=2)
    items = [i.model_dump() for i in doc.sections[SectionId.BEDROOMS].dynamic_items[:1]]
    updated = update_section(doc, SectionId.BEDROOMS, {"dynamic_items": items})
    assert updated.sections[SectionId.BEDROOMS].dynamic_count == 1


def test_with_dynamic_count_only_grows():
    section = _doc(bedroom_count=3).sections[SectionId.BEDROOMS]
    assert len(with_dynamic_count(section, SectionId.BEDROOMS, 1).dynamic_items) == 3
    grown = with_dynamic_count(section, SectionId.BEDROOMS, 4)
    assert grown.dynamic_items[-1].id == "habitaciones-4"


def test_iter_attachments_reports_owner():
    doc = _doc(bedroom_count=2)
    bedrooms = doc.sections[SectionId.BEDROOMS]
    bedrooms.dynamic_items[1].upload_zone.photos.append(FileAttachment(id="a1", payload="data:,x"))
    owners = [(owner, att.id) for owner, att in iter_attachments(bedrooms)]
    assert owners == [(1, "a1")]


def test_substitute_attachment_payloads_matches_by_id():
    section = Section(upload_zones=[UploadZone(id="portal", photos=[
        FileAttachment(id="a1", payload="data:image/png;base64,AAAA"),
        FileAttachment(id="a2", payload="data:image/png;base64,BBBB"),
    ])])
    updated = substitute_attachment_payloads(section, {"a2": "https://cdn/a2.png"})
    photos = updated.upload_zones[0].photos
    assert photos[0].payload.startswith("data:")
    assert photos[1].payload == "https://cdn/a2.png"
    assert section.upload_zones[0].photos[1].payload.startswith("data:")
