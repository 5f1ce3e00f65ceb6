from renocheck.schemas import ChecklistType, FileAttachment, ItemStatus, Section, SectionId, UploadZone
from renocheck.services.checklist_document import create_checklist
from renocheck.services.checklist_progress import (
    finalize_progress,
    overall_progress,
    section_has_content,
    section_progress,
)
from renocheck.services.checklist_validation import first_incomplete_section

from test_checklist_validation import filled_document


def test_blank_checklist_has_no_progress():
    doc = create_checklist("p1", ChecklistType.RENO_INITIAL, bedroom_count=1, bathroom_count=1)
    assert overall_progress(doc) == 0
    assert finalize_progress(doc) == 0


def test_filled_checklist_is_complete():
    doc = filled_document()
    assert overall_progress(doc) == 100
    assert finalize_progress(doc) == 100


def test_section_progress_counts_complete_groups():
    section = Section(
        upload_zones=[UploadZone(id="a", photos=[FileAttachment(payload="https://cdn/a.jpg")])],
        questions=create_checklist("p1", ChecklistType.RENO_FINAL).sections[SectionId.LIVING_ROOM].questions,
    )
    # zones group complete, questions group not
    assert section_progress(section) == 50
    assert section_has_content(section)


def test_section_without_groups_scores_zero():
    assert section_progress(Section()) == 0
    assert not section_has_content(Section())


def test_finalize_progress_is_looser_than_validation():
    doc = create_checklist("p1", ChecklistType.RENO_FINAL, bedroom_count=1, bathroom_count=1)
    for section in doc.sections.values():
        owners = [section, *(section.dynamic_items or [])]
        for owner in owners:
            questions = owner.questions or []
            if questions:
                questions[0].status = ItemStatus.GOOD
    assert finalize_progress(doc) == 100
    assert first_incomplete_section(doc) is not None
    assert overall_progress(doc) < 100


def test_one_touched_section_counts_partially():
    doc = create_checklist("p1", ChecklistType.RENO_INITIAL)
    doc.sections[SectionId.KITCHEN].questions[0].status = ItemStatus.GOOD
    assert 0 < finalize_progress(doc) < 100
