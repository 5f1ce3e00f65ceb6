"""Application configuration loaded from config.yaml + environment variables."""

from __future__ import annotations

import yaml
from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings

_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            return yaml.safe_load(f) or {}
    return {}


_yaml = _load_yaml()


class StorageConfig(BaseSettings):
    base_dir: str = "data/storage"
    bucket: str = "inspection-images"
    public_base_url: str = "http://localhost:8000/storage"


class CrmConfig(BaseSettings):
    """Airtable-style CRM. Field ids are opaque and deployment specific."""

    api_key: str = ""
    base_id: str = ""
    api_url: str = "https://api.airtable.com/v0"
    table_name: str = "Properties"
    timeout: float = 10.0

    business_key_field: str = "Unique ID From Engagements"
    fallback_key_fields: list[str] = Field(default_factory=lambda: [
        "UNIQUEID (from Engagements)",
        "Unique ID (From Engagements)",
        "Unique ID",
    ])

    set_up_status_field: str = "Set Up Status"
    initial_set_up_status: str = "Pending to budget (from Renovator)"
    initial_check_complete_field: str = "Initial Check Complete"
    estimated_visit_date_field: str = "fldIhqPOAFL52MMBn"
    auto_visit_date_field: str = "Auto Visit Date"
    next_reno_steps_field: str = "fldwzJJY5jWtaUvl"
    checklist_link_field: str = "fldBOpKEktOI2GnZK"
    progress_field: str = "Checklist Progress"

    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_factor: float = 2.0

    model_config = {"env_prefix": "CRM_", "env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.base_id)


class SyncConfig(BaseSettings):
    autosave_delay: float = 2.0
    require_complete_to_finalize: bool = False


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///data/renocheck.db"
    app_url: str = "http://localhost:8000"
    log_level: str = "INFO"
    storage: StorageConfig = Field(default_factory=StorageConfig)
    crm: CrmConfig = Field(default_factory=CrmConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


def get_settings() -> Settings:
    """Build Settings by merging YAML defaults with env overrides."""
    y = _yaml
    storage = StorageConfig(**y.get("storage", {}))
    crm = CrmConfig(**y.get("crm", {}))
    sync = SyncConfig(**y.get("sync", {}))
    kwargs = {}
    if "url" in y.get("database", {}):
        kwargs["database_url"] = y["database"]["url"]
    for key in ("app_url", "log_level"):
        if key in y:
            kwargs[key] = y[key]
    return Settings(storage=storage, crm=crm, sync=sync, **kwargs)
