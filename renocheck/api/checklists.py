from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from renocheck.config import Settings
from renocheck.db import crud
from renocheck.db.engine import get_db
from renocheck.dependencies import get_registry, get_settings_dep
from renocheck.schemas import (
    ChecklistRead,
    ChecklistType,
    FinalizeRequest,
    FinalizeResult,
    SaveResult,
    SectionId,
    ValidationRead,
)
from renocheck.services.checklist_progress import finalize_progress, overall_progress
from renocheck.services.checklist_validation import first_incomplete_section, unreported_sections
from renocheck.services.inspection_sync import ChecklistSession, SessionRegistry, UnrecoverableSyncError

router = APIRouter(prefix="/api/properties/{property_id}/checklists/{checklist_type}", tags=["checklists"])


async def _loaded_session(
    property_id: str, checklist_type: ChecklistType, db: AsyncSession, registry: SessionRegistry,
) -> ChecklistSession:
    if await crud.get_property(db, property_id) is None:
        raise HTTPException(404, "Property not found")
    session = registry.get(property_id, checklist_type)
    try:
        await session.initialize()
    except UnrecoverableSyncError as exc:
        raise HTTPException(500, f"Could not load checklist: {exc}")
    return session


def _snapshot(session: ChecklistSession) -> ChecklistRead:
    doc = session.document
    incomplete = first_incomplete_section(doc)
    return ChecklistRead(
        state=session.state.value,
        inspection_id=session.inspection.id if session.inspection else None,
        current_section=session.current_section,
        progress=overall_progress(doc),
        finalize_progress=finalize_progress(doc),
        complete=incomplete is None,
        incomplete=incomplete,
        document=doc,
    )


@router.get("", response_model=ChecklistRead)
async def get_checklist(
    property_id: str,
    checklist_type: ChecklistType,
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
):
    session = await _loaded_session(property_id, checklist_type, db, registry)
    await session.refresh_if_stale()
    return _snapshot(session)


@router.patch("/sections/{section_id}", response_model=ChecklistRead)
async def update_section(
    property_id: str,
    checklist_type: ChecklistType,
    section_id: str,
    body: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
):
    try:
        sid = SectionId(section_id)
    except ValueError:
        raise HTTPException(404, f"Unknown section: {section_id}")
    session = await _loaded_session(property_id, checklist_type, db, registry)
    try:
        session.update_section(sid, body)
    except ValidationError as exc:
        raise HTTPException(422, str(exc))
    return _snapshot(session)


@router.post("/save", response_model=SaveResult)
async def save_checklist(
    property_id: str,
    checklist_type: ChecklistType,
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
):
    session = await _loaded_session(property_id, checklist_type, db, registry)
    return await session.save_current_section()


@router.post("/finalize", response_model=FinalizeResult)
async def finalize_checklist(
    property_id: str,
    checklist_type: ChecklistType,
    body: FinalizeRequest | None = None,
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings_dep),
):
    body = body or FinalizeRequest()
    session = await _loaded_session(property_id, checklist_type, db, registry)
    require_complete = (
        settings.sync.require_complete_to_finalize if body.require_complete is None else body.require_complete
    )
    return await session.finalize_checklist(
        fields=body, completed_by=body.completed_by, require_complete=require_complete,
    )


@router.get("/validation", response_model=ValidationRead)
async def validate_checklist(
    property_id: str,
    checklist_type: ChecklistType,
    db: AsyncSession = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
):
    session = await _loaded_session(property_id, checklist_type, db, registry)
    incomplete = first_incomplete_section(session.document)
    return ValidationRead(
        complete=incomplete is None,
        incomplete=incomplete,
        unreported_sections=unreported_sections(session.document),
    )
