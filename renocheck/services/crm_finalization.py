"""Push a finalized checklist's summary to the CRM.

The CRM record is always located by the property's business key
(``Property.unique_id``). ``Property.crm_record_id`` is never used here: it
may reference a record in a different CRM table. Failures are returned as a
``CrmSyncResult`` and never raised, since local persistence has already
succeeded by the time this runs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date

from renocheck.config import CrmConfig
from renocheck.schemas import ChecklistType, CrmSyncResult, FinalizeFields, PropertyRead
from renocheck.services.crm_client import CrmClient, CrmError
from renocheck.services.retry import RetryExhaustedError, retry_async

logger = logging.getLogger(__name__)

# (set-up status, reno phase) applied locally once the CRM accepted a finalize.
PHASE_AFTER_FINALIZE: dict[ChecklistType, tuple[str, str]] = {
    ChecklistType.RENO_INITIAL: ("Pending to budget (from renovator)", "reno-budget-renovator"),
    ChecklistType.RENO_FINAL: ("Cleaning", "cleaning"),
}


def generate_checklist_public_url(app_url: str, property_id: str, checklist_type: ChecklistType) -> str:
    base = app_url if app_url.startswith("http") else f"https://{app_url}"
    return (
        f"{base.rstrip('/')}/reno/construction-manager/property/{property_id}"
        f"/checklist/public?type={checklist_type.value}"
    )


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, CrmError) and exc.transient


class CrmFinalizationAdapter:
    def __init__(
        self,
        client: CrmClient,
        config: CrmConfig,
        app_url: str,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.config = config
        self.app_url = app_url
        self._sleep = sleep

    async def _with_retry(self, operation, counter: list[int]):
        async def attempt():
            counter[0] += 1
            return await operation()

        return await retry_async(
            attempt,
            max_attempts=self.config.max_attempts,
            delay=self.config.backoff_base,
            backoff=self.config.backoff_factor,
            retry_on=_is_transient,
            sleep=self._sleep,
        )

    async def resolve_record_id(self, business_key: str, counter: list[int] | None = None) -> str | None:
        """Exact match on the business key field, then a SEARCH across its known variants."""
        counter = counter if counter is not None else [0]
        table = self.config.table_name
        record_id = await self._with_retry(
            lambda: self.client.find_record_id(table, self.config.business_key_field, business_key), counter,
        )
        if record_id is None and self.config.fallback_key_fields:
            logger.info("Exact CRM lookup for %s missed; trying fallback fields", business_key)
            record_id = await self._with_retry(
                lambda: self.client.search_record_id(table, self.config.fallback_key_fields, business_key),
                counter,
            )
        return record_id

    def build_fields(
        self,
        prop: PropertyRead,
        checklist_type: ChecklistType,
        fields: FinalizeFields,
        progress: float,
    ) -> dict:
        cfg = self.config
        out: dict = {
            cfg.progress_field: progress,
            cfg.checklist_link_field: generate_checklist_public_url(self.app_url, prop.id, checklist_type),
        }
        next_steps = fields.next_reno_steps or prop.next_reno_steps
        if next_steps:
            out[cfg.next_reno_steps_field] = next_steps
        if checklist_type == ChecklistType.RENO_INITIAL:
            out[cfg.set_up_status_field] = cfg.initial_set_up_status
            out[cfg.initial_check_complete_field] = True
            out[cfg.auto_visit_date_field] = (fields.auto_visit_date or date.today()).isoformat()
            visit = fields.estimated_visit_date or prop.estimated_visit_date
            if visit is not None:
                out[cfg.estimated_visit_date_field] = visit.isoformat()
        return out

    async def push_finalization(
        self,
        prop: PropertyRead,
        checklist_type: ChecklistType,
        fields: FinalizeFields | None,
        progress: float,
    ) -> CrmSyncResult:
        if not prop.unique_id:
            logger.warning("Property %s has no business key; skipping CRM finalize", prop.id)
            return CrmSyncResult(success=False, reason="Property has no business key")

        counter = [0]
        try:
            record_id = await self.resolve_record_id(prop.unique_id, counter)
            if record_id is None:
                logger.warning("No CRM record found for business key %s", prop.unique_id)
                return CrmSyncResult(
                    success=False, attempts=counter[0],
                    reason=f"No CRM record for business key {prop.unique_id}",
                )
            payload = self.build_fields(prop, checklist_type, fields or FinalizeFields(), progress)
            await self._with_retry(
                lambda: self.client.update_record(self.config.table_name, record_id, payload), counter,
            )
        except RetryExhaustedError as exc:
            logger.error("CRM finalize for %s gave up: %s", prop.unique_id, exc.last_error)
            return CrmSyncResult(success=False, attempts=counter[0], reason=str(exc.last_error))
        except (CrmError, ValueError) as exc:
            logger.error("CRM finalize for %s failed: %s", prop.unique_id, exc)
            return CrmSyncResult(success=False, attempts=counter[0], reason=str(exc))

        logger.info("CRM record %s updated for property %s", record_id, prop.id)
        return CrmSyncResult(success=True, record_id=record_id, attempts=counter[0])
