"""Minimal Airtable-style REST client used for CRM write-back."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from renocheck.config import CrmConfig

logger = logging.getLogger(__name__)


class CrmError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        """Network failures, rate limits and server errors are worth retrying."""
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class CrmClient:
    def __init__(
        self,
        api_key: str,
        base_id: str,
        api_url: str = "https://api.airtable.com/v0",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = f"{api_url.rstrip('/')}/{base_id}"
        self.client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    @classmethod
    def from_config(cls, config: CrmConfig, transport: httpx.AsyncBaseTransport | None = None) -> CrmClient:
        return cls(config.api_key, config.base_id, config.api_url, config.timeout, transport)

    async def _request(self, method: str, table: str, path: str = "", **kwargs) -> dict:
        url = f"{self.base_url}/{quote(table, safe='')}{path}"
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise CrmError(f"{method} {table} failed: {exc}") from exc
        if response.status_code >= 400:
            raise CrmError(
                f"{method} {table} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response.json()

    async def _first_record_id(self, table: str, formula: str) -> str | None:
        data = await self._request(
            "GET", table, params={"filterByFormula": formula, "maxRecords": 1, "pageSize": 1},
        )
        records = data.get("records") or []
        return records[0]["id"] if records else None

    async def find_record_id(self, table: str, field: str, value: str) -> str | None:
        """Record whose ``field`` equals ``value`` exactly."""
        return await self._first_record_id(table, f"{{{field}}} = {_quote(value)}")

    async def search_record_id(self, table: str, fields: list[str], value: str) -> str | None:
        """Looser match: ``value`` contained in any of ``fields``."""
        if not fields:
            return None
        clauses = [f"SEARCH({_quote(value)}, {{{field}}} & '')" for field in fields]
        formula = clauses[0] if len(clauses) == 1 else f"OR({', '.join(clauses)})"
        return await self._first_record_id(table, formula)

    async def update_record(self, table: str, record_id: str, fields: dict) -> dict:
        logger.debug("Updating %s/%s fields=%s", table, record_id, sorted(fields))
        return await self._request("PATCH", table, f"/{record_id}", json={"fields": fields, "typecast": True})

    async def aclose(self) -> None:
        await self.client.aclose()
