"""CRM write-back against a mocked Airtable-style API."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone

import httpx
import pytest

from renocheck.config import CrmConfig
from renocheck.schemas import ChecklistType, FinalizeFields, PropertyRead
from renocheck.services.crm_client import CrmClient
from renocheck.services.crm_finalization import CrmFinalizationAdapter, generate_checklist_public_url


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeCrm:
    """Records requests and answers lookups from a business-key -> record-id table."""

    def __init__(self, exact=None, search=None, failures=0, patch_status=200):
        self.exact = exact or {}
        self.search = search or {}
        self.failures = failures
        self.patch_status = patch_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failures:
            self.failures -= 1
            return httpx.Response(503, text="unavailable")
        if request.method == "PATCH":
            return httpx.Response(self.patch_status, json={"id": request.url.path.rsplit("/", 1)[-1]})
        formula = request.url.params["filterByFormula"]
        table = self.search if formula.startswith(("SEARCH", "OR(")) else self.exact
        records = [{"id": rid} for key, rid in table.items() if f'"{key}"' in formula]
        return httpx.Response(200, json={"records": records})

    @property
    def patches(self):
        return [r for r in self.requests if r.method == "PATCH"]


def _config(**overrides):
    return CrmConfig(api_key="key", base_id="app123", **overrides)


def _adapter(fake: FakeCrm, sleep=None, **overrides):
    config = _config(**overrides)
    client = CrmClient.from_config(config, transport=httpx.MockTransport(fake))
    return CrmFinalizationAdapter(client, config, "reno.example.com", sleep=sleep or FakeSleep())


def _property(**overrides):
    values = dict(
        id="p1", label="Calle Mayor 1", bedrooms=2, bathrooms=1, unique_id="SP-001",
        created_at=datetime.now(timezone.utc),
    )
    values.update(overrides)
    return PropertyRead(**values)


def test_public_url():
    url = generate_checklist_public_url("reno.example.com", "p1", ChecklistType.RENO_INITIAL)
    assert url == "https://reno.example.com/reno/construction-manager/property/p1/checklist/public?type=reno_initial"
    assert generate_checklist_public_url("http://localhost:8000/", "p1", ChecklistType.RENO_FINAL).startswith(
        "http://localhost:8000/reno/"
    )


async def test_exact_match_updates_record():
    fake = FakeCrm(exact={"SP-001": "rec1"})
    adapter = _adapter(fake)
    fields = FinalizeFields(estimated_visit_date=date(2026, 11, 3), next_reno_steps="Pedir presupuesto")

    result = await adapter.push_finalization(_property(), ChecklistType.RENO_INITIAL, fields, 75)

    assert result.success
    assert result.record_id == "rec1"
    assert result.attempts == 2
    patch = fake.patches[0]
    assert patch.url.path == "/v0/app123/Properties/rec1"
    assert patch.headers["Authorization"] == "Bearer key"
    body = json.loads(patch.content)
    assert body["typecast"] is True
    sent = body["fields"]
    assert sent["Checklist Progress"] == 75
    assert sent["Set Up Status"] == "Pending to budget (from Renovator)"
    assert sent["Initial Check Complete"] is True
    assert sent["fldIhqPOAFL52MMBn"] == "2026-11-03"
    assert sent["fldwzJJY5jWtaUvl"] == "Pedir presupuesto"
    assert sent["fldBOpKEktOI2GnZK"].endswith("/property/p1/checklist/public?type=reno_initial")


async def test_final_checklist_leaves_set_up_status_alone():
    fake = FakeCrm(exact={"SP-001": "rec1"})
    result = await _adapter(fake).push_finalization(_property(), ChecklistType.RENO_FINAL, None, 100)
    assert result.success
    sent = json.loads(fake.patches[0].content)["fields"]
    assert "Set Up Status" not in sent
    assert "fldIhqPOAFL52MMBn" not in sent


async def test_fallback_search_finds_record():
    fake = FakeCrm(search={"SP-001": "rec9"})
    result = await _adapter(fake).push_finalization(_property(), ChecklistType.RENO_INITIAL, None, 10)
    assert result.success
    assert result.record_id == "rec9"
    formulas = [r.url.params["filterByFormula"] for r in fake.requests if r.method == "GET"]
    assert formulas[0] == '{Unique ID From Engagements} = "SP-001"'
    assert formulas[1].startswith("OR(SEARCH(")


async def test_record_not_found():
    fake = FakeCrm()
    result = await _adapter(fake).push_finalization(_property(), ChecklistType.RENO_INITIAL, None, 10)
    assert not result.success
    assert result.reason == "No CRM record for business key SP-001"
    assert fake.patches == []


async def test_missing_business_key_skips_crm():
    fake = FakeCrm(exact={"SP-001": "rec1"})
    result = await _adapter(fake).push_finalization(
        _property(unique_id=None, crm_record_id="recOther"), ChecklistType.RENO_INITIAL, None, 10,
    )
    assert not result.success
    assert result.reason == "Property has no business key"
    assert fake.requests == []


async def test_transient_errors_are_retried_with_backoff():
    fake = FakeCrm(exact={"SP-001": "rec1"}, failures=2)
    sleep = FakeSleep()
    result = await _adapter(fake, sleep=sleep).push_finalization(
        _property(), ChecklistType.RENO_INITIAL, None, 50,
    )
    assert result.success
    assert result.attempts == 4
    assert sleep.delays == [1.0, 2.0]


async def test_retries_exhausted():
    fake = FakeCrm(exact={"SP-001": "rec1"}, failures=10)
    result = await _adapter(fake, max_attempts=2).push_finalization(
        _property(), ChecklistType.RENO_INITIAL, None, 50,
    )
    assert not result.success
    assert result.attempts == 2
    assert "503" in result.reason


@pytest.mark.parametrize("status", [401, 422])
async def test_client_errors_are_not_retried(status):
    fake = FakeCrm(exact={"SP-001": "rec1"}, patch_status=status)
    sleep = FakeSleep()
    result = await _adapter(fake, sleep=sleep).push_finalization(
        _property(), ChecklistType.RENO_INITIAL, None, 50,
    )
    assert not result.success
    assert str(status) in result.reason
    assert len(fake.patches) == 1
    assert sleep.delays == []


async def test_auto_visit_date_defaults_to_today():
    fake = FakeCrm(exact={"SP-001": "rec1"})
    adapter = _adapter(fake)
    await adapter.push_finalization(_property(), ChecklistType.RENO_INITIAL, None, 10)
    await adapter.push_finalization(
        _property(), ChecklistType.RENO_INITIAL, FinalizeFields(auto_visit_date=date(2026, 10, 1)), 10,
    )
    first, second = (json.loads(p.content)["fields"] for p in fake.patches)
    assert first["Auto Visit Date"] == date.today().isoformat()
    assert second["Auto Visit Date"] == "2026-10-01"
