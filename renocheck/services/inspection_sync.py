"""Inspection synchronization session.

Keeps one checklist document in step with its relational rows: locates or
creates the inspection, makes sure every zone exists, saves the section being
edited (uploading inline attachments first) and finalizes into the CRM.

The session is an explicit state machine::

    idle -> locating-inspection -> [creating-inspection] -> [creating-zones] -> loaded
    loaded -> saving-section -> loaded
    loaded -> finalizing -> loaded
    loaded -> locating-inspection            (forced reload)
    any init state -> failed -> locating-inspection

Overlapping ``initialize()`` calls await the one in flight; an overlapping
``save_current_section()`` returns a skipped result. Nothing is cancelled
except pending autosave timers.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from renocheck.db import crud
from renocheck.schemas import (
    ChecklistType,
    CrmSyncResult,
    ElementFailure,
    FinalizeFields,
    FinalizeOutcome,
    FinalizeResult,
    InspectionDocument,
    InspectionRead,
    PropertyRead,
    SaveResult,
    SchemaCapabilities,
    Section,
    SectionId,
    ZoneRead,
)
from renocheck.services.blob_store import BlobStore, BucketNotFoundError, StorageError, is_inline_payload
from renocheck.services.checklist_converter import (
    assign_section_elements,
    order_dynamic_zones,
    rows_to_sections,
    section_to_zone_rows,
    zone_type_for,
)
from renocheck.services.checklist_document import (
    create_checklist,
    iter_attachments,
    substitute_attachment_payloads,
    update_section,
)
from renocheck.services.checklist_progress import finalize_progress
from renocheck.services.checklist_validation import first_incomplete_section
from renocheck.services.crm_finalization import PHASE_AFTER_FINALIZE, CrmFinalizationAdapter

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    LOCATING = "locating-inspection"
    CREATING_INSPECTION = "creating-inspection"
    CREATING_ZONES = "creating-zones"
    LOADED = "loaded"
    SAVING = "saving-section"
    FINALIZING = "finalizing"
    FAILED = "failed"


_TRANSITIONS: dict[SyncState, frozenset[SyncState]] = {
    SyncState.IDLE: frozenset({SyncState.LOCATING}),
    SyncState.LOCATING: frozenset({
        SyncState.CREATING_INSPECTION, SyncState.CREATING_ZONES, SyncState.LOADED, SyncState.FAILED,
    }),
    SyncState.CREATING_INSPECTION: frozenset({SyncState.CREATING_ZONES, SyncState.LOADED, SyncState.FAILED}),
    SyncState.CREATING_ZONES: frozenset({SyncState.LOADED, SyncState.FAILED}),
    SyncState.LOADED: frozenset({SyncState.SAVING, SyncState.FINALIZING, SyncState.LOCATING}),
    SyncState.SAVING: frozenset({SyncState.LOADED}),
    SyncState.FINALIZING: frozenset({SyncState.LOADED}),
    SyncState.FAILED: frozenset({SyncState.LOCATING}),
}


class UnrecoverableSyncError(Exception):
    """The inspection could not be located or created; the session is unusable until retried."""


class InvalidTransitionError(RuntimeError):
    pass


class ChecklistSession:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        property_id: str,
        checklist_type: ChecklistType,
        blob_store: BlobStore,
        crm: CrmFinalizationAdapter | None = None,
        user_id: str | None = None,
        autosave_delay: float = 2.0,
    ):
        self._session_factory = session_factory
        self.property_id = property_id
        self.checklist_type = checklist_type
        self.blob_store = blob_store
        self.crm = crm
        self.user_id = user_id
        self.autosave_delay = autosave_delay

        self.state = SyncState.IDLE
        self.capabilities: SchemaCapabilities | None = None
        self.property: PropertyRead | None = None
        self.inspection: InspectionRead | None = None
        self.zones: list[ZoneRead] = []
        self.document: InspectionDocument | None = None
        self.current_section: SectionId | None = None
        self.last_error: str | None = None

        self._init_task: asyncio.Task | None = None
        self._loaded_key: tuple[str, ChecklistType, str] | None = None
        self._row_counts: tuple[int, int] = (0, 0)
        self._autosave_handle: asyncio.TimerHandle | None = None
        self._autosave_task: asyncio.Future | None = None
        self._closed = False
        self._edit_versions: dict[SectionId, int] = {}

    # ── State machine ────────────────────────────────────

    def _transition(self, new: SyncState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"{self.state.value} -> {new.value}")
        logger.debug("Checklist %s/%s: %s -> %s",
                     self.property_id, self.checklist_type.value, self.state.value, new.value)
        self.state = new

    def _fail(self, message: str) -> None:
        self.last_error = message
        if self.state != SyncState.FAILED:
            self._transition(SyncState.FAILED)

    @property
    def is_loaded(self) -> bool:
        return (
            self.state == SyncState.LOADED
            and self.inspection is not None
            and self._loaded_key == (self.property_id, self.checklist_type, self.inspection.id)
            and bool(self.zones)
        )

    # ── Initialization ───────────────────────────────────

    async def initialize(self, force: bool = False) -> InspectionDocument:
        """Locate or create the inspection and load its document.

        Skipped when already loaded for the same inspection unless ``force``.
        """
        if self._closed:
            raise UnrecoverableSyncError("Checklist session is closed")
        if self._init_task is not None and not self._init_task.done():
            return await asyncio.shield(self._init_task)
        if not force and self.is_loaded:
            return self.document
        if self.state not in (SyncState.IDLE, SyncState.LOADED, SyncState.FAILED):
            raise InvalidTransitionError(f"Cannot initialize while {self.state.value}")

        self._init_task = asyncio.ensure_future(self._initialize())
        return await asyncio.shield(self._init_task)

    async def _initialize(self) -> InspectionDocument:
        self._transition(SyncState.LOCATING)
        try:
            async with self._session_factory() as db:
                if self.capabilities is None:
                    self.capabilities = await crud.probe_schema_capabilities(db)
                prop = await crud.get_property(db, self.property_id)
                if prop is None:
                    raise UnrecoverableSyncError(f"Property {self.property_id} not found")
                self.property = PropertyRead.model_validate(prop)
                inspection = await crud.find_inspection(
                    db, self.property_id, self.checklist_type.inspection_type, self.capabilities,
                )

            if inspection is None:
                self._transition(SyncState.CREATING_INSPECTION)
                async with self._session_factory() as db:
                    inspection = await crud.create_inspection(
                        db, self.property_id, self.checklist_type.inspection_type, self.capabilities,
                        has_elevator=self.property.has_elevator, created_by=self.user_id,
                    )
                logger.info("Created %s inspection %s for property %s",
                            self.checklist_type.inspection_type, inspection.id, self.property_id)
            self.inspection = inspection

            await self._ensure_zones()
            await self._reload()
        except UnrecoverableSyncError as exc:
            self._fail(str(exc))
            raise
        except SQLAlchemyError as exc:
            logger.exception("Failed to initialize checklist for property %s", self.property_id)
            self._fail(str(exc))
            raise UnrecoverableSyncError(f"Could not load inspection: {exc}") from exc

        self.last_error = None
        self._transition(SyncState.LOADED)
        return self.document

    def _has_elevator(self) -> bool | None:
        if self.inspection is not None and self.inspection.has_elevator is not None:
            return self.inspection.has_elevator
        return self.property.has_elevator if self.property else None

    async def _ensure_zones(self) -> None:
        """Create any zone the property needs that does not exist yet."""
        async with self._session_factory() as db:
            existing = await crud.list_zones(db, self.inspection.id)
        present = {(z.zone_type, z.zone_name) for z in existing}

        template = create_checklist(
            self.property_id, self.checklist_type,
            bedroom_count=self.property.bedrooms, bathroom_count=self.property.bathrooms,
        )
        missing = [
            row
            for section_id, section in template.sections.items()
            for row in section_to_zone_rows(section_id, section, self.inspection.id)
            if (row.zone_type, row.zone_name) not in present
        ]
        if not missing:
            return
        if self.state != SyncState.CREATING_ZONES:
            self._transition(SyncState.CREATING_ZONES)
        async with self._session_factory() as db:
            await crud.create_zones(db, missing)
        logger.info("Created %d zone(s) for inspection %s", len(missing), self.inspection.id)

    async def _reload(self, keep_edits_since: dict[SectionId, int] | None = None) -> None:
        """Refetch rows and rebuild the document; results are dropped once closed.

        With ``keep_edits_since``, sections edited locally after that version
        stamp are laid back over the rebuilt document.
        """
        async with self._session_factory() as db:
            zones = await crud.list_zones(db, self.inspection.id)
            elements = await crud.list_elements_for_inspection(db, self.inspection.id)
        if self._closed:
            return
        has_elevator = self._has_elevator()
        sections = rows_to_sections(
            zones, elements, self.property.bedrooms, self.property.bathrooms, has_elevator,
        )
        edited = self._edited_since(keep_edits_since) if keep_edits_since is not None else {}
        self.zones = [ZoneRead.model_validate(z) for z in zones]
        self.document = create_checklist(
            self.property_id, self.checklist_type, sections=sections,
            bedroom_count=self.property.bedrooms, bathroom_count=self.property.bathrooms,
            has_elevator=has_elevator,
        )
        if edited:
            self.document = self.document.model_copy(update={"sections": {**self.document.sections, **edited}})
        self._row_counts = (len(zones), len(elements))
        self._loaded_key = (self.property_id, self.checklist_type, self.inspection.id)

    async def is_stale(self) -> bool:
        """True when zone or element counts changed behind this session's back."""
        if self.inspection is None:
            return False
        async with self._session_factory() as db:
            counts = await crud.count_rows_for_inspection(db, self.inspection.id)
        return counts != self._row_counts

    async def refresh_if_stale(self) -> bool:
        if self.state != SyncState.LOADED or not await self.is_stale():
            return False
        logger.info("Inspection %s changed externally; reloading", self.inspection.id)
        await self.initialize(force=True)
        return True

    # ── Editing ──────────────────────────────────────────

    def _require_document(self) -> InspectionDocument:
        if self.document is None:
            raise InvalidTransitionError(f"No document loaded (state {self.state.value})")
        return self.document

    def update_section(self, section_id: SectionId | str, partial: Section | dict) -> InspectionDocument:
        """Merge a local edit and make that section the one the next save persists."""
        document = self._require_document()
        try:
            sid = SectionId(section_id)
        except ValueError:
            logger.debug("Ignoring edit for unknown section %r", section_id)
            return document
        self.document = update_section(document, sid, partial)
        self._edit_versions[sid] = self._edit_versions.get(sid, 0) + 1
        self.current_section = sid
        return self.document

    def set_current_section(self, section_id: SectionId | str) -> None:
        self.current_section = SectionId(section_id)

    # ── Saving ───────────────────────────────────────────

    async def save_current_section(self) -> SaveResult:
        if self.state == SyncState.SAVING:
            logger.debug("Save already in flight; skipping")
            return SaveResult(section_id=self.current_section, skipped=True)
        if self.state != SyncState.LOADED or self.document is None or self.current_section is None:
            return SaveResult(section_id=self.current_section, skipped=True)

        section_id = self.current_section
        self._transition(SyncState.SAVING)
        try:
            return await self._save_section(section_id)
        finally:
            self._transition(SyncState.LOADED)

    def _owner_zone_ids(self, section_id: SectionId, section: Section) -> dict[int | None, str]:
        """Zone id for section-level attachments (key None) and for each dynamic item index."""
        zone_type = zone_type_for(section_id)
        matching = [z for z in self.zones if z.zone_type == zone_type]
        if not matching:
            return {}
        if section.is_dynamic:
            ordered = order_dynamic_zones(matching)
            owners: dict[int | None, str] = {i: z.id for i, z in enumerate(ordered)}
            owners[None] = ordered[0].id
            return owners
        return {None: matching[0].id}

    async def _upload_pending(self, section_id: SectionId, section: Section, result: SaveResult) -> dict[str, str]:
        pending = [
            (owner, att) for owner, att in iter_attachments(section)
            if not att.is_uploaded and is_inline_payload(att.payload)
        ]
        if not pending:
            return {}

        owner_zones = self._owner_zone_ids(section_id, section)

        async def upload_one(owner, att):
            zone_id = owner_zones.get(owner)
            if zone_id is None:
                raise StorageError(f"No zone for attachment {att.id}")
            return await self.blob_store.upload_attachment(att, self.property_id, self.inspection.id, zone_id)

        outcomes = await asyncio.gather(*(upload_one(o, a) for o, a in pending), return_exceptions=True)
        urls: dict[str, str] = {}
        for (_, att), outcome in zip(pending, outcomes):
            if isinstance(outcome, BucketNotFoundError):
                result.storage_degraded = True
                result.inline_fallback += 1
            elif isinstance(outcome, StorageError):
                logger.warning("Upload of attachment %s failed, keeping it inline: %s", att.id, outcome)
                result.inline_fallback += 1
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                urls[att.id] = outcome
                result.uploaded += 1
        if result.storage_degraded:
            logger.warning("Storage bucket %s is missing; attachments kept inline", self.blob_store.bucket)
        return urls

    def _edited_since(self, stamp: dict[SectionId, int]) -> dict[SectionId, Section]:
        """Local sections edited after ``stamp`` was taken."""
        return {
            sid: self.document.sections[sid]
            for sid, version in self._edit_versions.items()
            if version > stamp.get(sid, 0) and sid in self.document.sections
        }

    async def _save_section(self, section_id: SectionId) -> SaveResult:
        result = SaveResult(section_id=section_id)
        section = self.document.sections.get(section_id)
        if section is None:
            return result
        stamp = dict(self._edit_versions)

        urls = await self._upload_pending(section_id, section, result)
        if urls:
            section = substitute_attachment_payloads(section, urls)
            # edits made during the upload are kept; only payloads are swapped in
            sections = dict(self.document.sections)
            sections[section_id] = substitute_attachment_payloads(sections[section_id], urls)
            self.document = self.document.model_copy(update={"sections": sections})

        for zone_id, rows in assign_section_elements(section_id, section, self.zones).items():
            for row in rows:
                try:
                    async with self._session_factory() as db:
                        await crud.upsert_element(db, row)
                    result.saved += 1
                except SQLAlchemyError as exc:
                    logger.warning("Failed to save element %s in zone %s: %s", row.element_name, zone_id, exc)
                    result.failed.append(ElementFailure(zone_id=zone_id, element_name=row.element_name, error=str(exc)))

        try:
            await self._reload(keep_edits_since=stamp)
        except SQLAlchemyError as exc:
            logger.warning("Reload after saving %s failed; keeping local document: %s", section_id.value, exc)
            result.reload_error = str(exc)
            self._row_counts = (-1, -1)

        logger.info("Saved section %s: %d element(s), %d failed, %d upload(s), %d inline",
                    section_id.value, result.saved, len(result.failed), result.uploaded, result.inline_fallback)
        return result

    # ── Autosave ─────────────────────────────────────────

    def schedule_save(self, delay: float | None = None) -> None:
        """Debounced save: each call pushes the pending save back by ``delay`` seconds."""
        if self._closed:
            return
        self._cancel_autosave()
        loop = asyncio.get_running_loop()
        self._autosave_handle = loop.call_later(
            self.autosave_delay if delay is None else delay, self._fire_autosave,
        )

    def _fire_autosave(self) -> None:
        self._autosave_handle = None
        self._autosave_task = asyncio.ensure_future(self._autosave())

    async def _autosave(self) -> None:
        try:
            await self.save_current_section()
        except (SQLAlchemyError, StorageError):
            logger.exception("Autosave of %s failed", self.current_section)

    def _cancel_autosave(self) -> None:
        if self._autosave_handle is not None:
            self._autosave_handle.cancel()
            self._autosave_handle = None

    def close(self) -> None:
        """Cancel pending timers; results of calls still in flight are discarded."""
        self._closed = True
        self._cancel_autosave()

    # ── Finalization ─────────────────────────────────────

    async def finalize_checklist(
        self,
        fields: FinalizeFields | None = None,
        completed_by: str | None = None,
        require_complete: bool = False,
    ) -> FinalizeResult:
        """Save, mark the inspection completed, then push the summary to the CRM.

        CRM failures never undo the local completion; they surface as the
        ``saved_not_synced`` outcome.
        """
        if self.state != SyncState.LOADED:
            return FinalizeResult(
                outcome=FinalizeOutcome.FAILED, local_success=False,
                message=f"Cannot finalize while {self.state.value}",
            )

        save = await self.save_current_section() if self.current_section is not None else None
        self._transition(SyncState.FINALIZING)
        try:
            return await self._finalize(fields, completed_by, require_complete, save)
        finally:
            self._transition(SyncState.LOADED)

    async def _finalize(
        self, fields: FinalizeFields | None, completed_by: str | None,
        require_complete: bool, save: SaveResult | None,
    ) -> FinalizeResult:
        progress = finalize_progress(self.document)
        if save is not None and save.reload_error is not None:
            return FinalizeResult(
                outcome=FinalizeOutcome.FAILED, local_success=False, progress=progress,
                message=f"Could not reload the inspection after saving: {save.reload_error}", save=save,
            )
        if require_complete:
            incomplete = first_incomplete_section(self.document)
            if incomplete is not None:
                return FinalizeResult(
                    outcome=FinalizeOutcome.FAILED, local_success=False, progress=progress,
                    message=incomplete.message, incomplete=incomplete, save=save,
                )

        try:
            async with self._session_factory() as db:
                completed = await crud.complete_inspection(
                    db, self.inspection.id, self.capabilities, completed_by or self.user_id,
                )
        except SQLAlchemyError as exc:
            logger.exception("Failed to complete inspection %s", self.inspection.id)
            return FinalizeResult(
                outcome=FinalizeOutcome.FAILED, local_success=False, progress=progress,
                message=f"Could not save the inspection: {exc}", save=save,
            )
        if not completed:
            return FinalizeResult(
                outcome=FinalizeOutcome.FAILED, local_success=False, progress=progress,
                message="Inspection no longer exists", save=save,
            )

        if self.crm is None:
            crm_result = CrmSyncResult(success=False, reason="CRM integration not configured")
        else:
            crm_result = await self.crm.push_finalization(self.property, self.checklist_type, fields, progress)

        if crm_result.success:
            await self._advance_phase()
            return FinalizeResult(
                outcome=FinalizeOutcome.SYNCED, local_success=True, crm_success=True,
                progress=progress, message="Checklist finalized", save=save,
            )
        return FinalizeResult(
            outcome=FinalizeOutcome.SAVED_NOT_SYNCED, local_success=True, crm_success=False,
            crm_reason=crm_result.reason, progress=progress,
            message="Checklist saved but not synced to the CRM", save=save,
        )

    async def _advance_phase(self) -> None:
        phase = PHASE_AFTER_FINALIZE.get(self.checklist_type)
        if phase is None:
            return
        set_up_status, reno_phase = phase
        try:
            async with self._session_factory() as db:
                prop = await crud.get_property(db, self.property_id)
                if prop is not None:
                    prop = await crud.update_property(db, prop, set_up_status=set_up_status, reno_phase=reno_phase)
                    self.property = PropertyRead.model_validate(prop)
        except SQLAlchemyError:
            logger.exception("Failed to advance phase of property %s", self.property_id)


class SessionRegistry:
    """One ``ChecklistSession`` per (property, checklist type)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        blob_store: BlobStore,
        crm: CrmFinalizationAdapter | None = None,
        autosave_delay: float = 2.0,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.crm = crm
        self.autosave_delay = autosave_delay
        self._sessions: dict[tuple[str, ChecklistType], ChecklistSession] = {}

    def get(self, property_id: str, checklist_type: ChecklistType, user_id: str | None = None) -> ChecklistSession:
        key = (property_id, checklist_type)
        session = self._sessions.get(key)
        if session is None:
            session = ChecklistSession(
                self.session_factory, property_id, checklist_type, self.blob_store,
                crm=self.crm, user_id=user_id, autosave_delay=self.autosave_delay,
            )
            self._sessions[key] = session
        return session

    def discard(self, property_id: str, checklist_type: ChecklistType) -> None:
        session = self._sessions.pop((property_id, checklist_type), None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
