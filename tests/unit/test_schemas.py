import pytest
from pydantic import ValidationError

from renocheck.schemas import (
    ChecklistType,
    DynamicItem,
    FileAttachment,
    InspectionDocument,
    ItemUnit,
    PropertyCreate,
    QuantityItem,
    Question,
    Section,
    SectionId,
    UploadZone,
)


def test_property_create_valid():
    prop = PropertyCreate(label="Calle Mayor 1", bedrooms=2, bathrooms=1, unique_id="SP-001")
    assert prop.bedrooms == 2
    assert prop.unique_id == "SP-001"


def test_property_create_rejects_negative_rooms():
    with pytest.raises(ValidationError):
        PropertyCreate(label="x", bedrooms=-1)


def test_checklist_type_maps_to_inspection_type():
    assert ChecklistType.RENO_INITIAL.inspection_type == "initial"
    assert ChecklistType.RENO_INTERMEDIATE.inspection_type == "intermediate"
    assert ChecklistType.RENO_FINAL.inspection_type == "final"


def test_quantity_item_pads_units_to_quantity():
    item = QuantityItem(id="ventanas", quantity=3, units=[ItemUnit(status="buen_estado")])
    assert len(item.units) == 3
    assert item.units[0].status == "buen_estado"
    assert item.units[2].status is None


def test_quantity_item_trims_units_and_clears_them_at_one():
    item = QuantityItem(id="ventanas", quantity=2, units=[ItemUnit(), ItemUnit(), ItemUnit()])
    assert len(item.units) == 2
    single = QuantityItem(id="ventanas", quantity=1, units=[ItemUnit(), ItemUnit()])
    assert single.units == []


def test_quantity_item_rejects_negative_quantity():
    with pytest.raises(ValidationError):
        QuantityItem(id="ventanas", quantity=-1)


def test_section_rejects_duplicate_question_ids():
    with pytest.raises(ValidationError):
        Section(questions=[Question(id="acabados"), Question(id="acabados")])


def test_section_dynamic_count_defaults_to_item_count():
    items = [DynamicItem(id=f"habitaciones-{n}", upload_zone=UploadZone(id=f"z{n}")) for n in (1, 2)]
    section = Section(dynamic_items=items)
    assert section.dynamic_count == 2
    assert section.is_dynamic


def test_section_dynamic_count_requires_items():
    with pytest.raises(ValidationError):
        Section(dynamic_count=2)


def test_capability_absent_is_none():
    section = Section(questions=[Question(id="acabados")])
    assert section.upload_zones is None
    assert section.carpentry_items is None
    assert not section.is_dynamic


def test_document_drops_unknown_section_ids():
    doc = InspectionDocument(
        property_id="p1",
        checklist_type=ChecklistType.RENO_INITIAL,
        sections={"salon": Section(), "garaje": Section()},
    )
    assert list(doc.sections) == [SectionId.LIVING_ROOM]


def test_file_attachment_upload_state():
    assert FileAttachment(payload="https://cdn/x.jpg").is_uploaded
    assert not FileAttachment(payload="data:image/png;base64,AAAA").is_uploaded
