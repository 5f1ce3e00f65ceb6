"""FastAPI dependency providers for settings, storage and checklist sessions."""

from __future__ import annotations

from functools import lru_cache

from renocheck.config import Settings, get_settings
from renocheck.db.engine import async_session_factory
from renocheck.services.blob_store import BlobStore
from renocheck.services.crm_client import CrmClient
from renocheck.services.crm_finalization import CrmFinalizationAdapter
from renocheck.services.inspection_sync import SessionRegistry


@lru_cache
def get_settings_dep() -> Settings:
    return get_settings()


def build_crm_adapter(settings: Settings) -> CrmFinalizationAdapter | None:
    """None when no CRM credentials are configured."""
    if not settings.crm.enabled:
        return None
    return CrmFinalizationAdapter(CrmClient.from_config(settings.crm), settings.crm, settings.app_url)


@lru_cache
def get_registry() -> SessionRegistry:
    settings = get_settings_dep()
    return SessionRegistry(
        async_session_factory,
        BlobStore.from_config(settings.storage),
        crm=build_crm_adapter(settings),
        autosave_delay=settings.sync.autosave_delay,
    )
