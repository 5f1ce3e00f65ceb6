"""Unit tests for CRUD operations."""

from __future__ import annotations

import pytest_asyncio
from sqlalchemy import delete, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from renocheck.db import crud
from renocheck.db.engine import build_engine
from renocheck.models import Base, Element, Inspection, Property, Zone
from renocheck.schemas import ElementUpsert, ZoneCreate


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def legacy_db(tmp_path):
    """Database whose inspections table predates the inspection_type column."""
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'legacy.db'}")
    async with eng.begin() as conn:
        await conn.execute(text(
            "CREATE TABLE inspections ("
            "id VARCHAR(26) PRIMARY KEY, property_id VARCHAR(26), inspection_status VARCHAR(20), "
            "has_elevator BOOLEAN, public_link_id VARCHAR(36), created_by VARCHAR(100), "
            "completed_by VARCHAR(100), completed_at DATETIME, created_at DATETIME)"
        ))
        await conn.run_sync(
            Base.metadata.create_all, tables=[Property.__table__, Zone.__table__, Element.__table__],
        )
    factory = async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await eng.dispose()


async def test_create_and_get_property(db):
    prop = await crud.create_property(db, label="Calle Mayor 1", bedrooms=3, bathrooms=2, unique_id="SP-1")
    assert prop.id
    fetched = await crud.get_property(db, prop.id)
    assert fetched.label == "Calle Mayor 1"
    assert fetched.bedrooms == 3


async def test_update_property_ignores_none(db):
    prop = await crud.create_property(db, label="x", unique_id="SP-1")
    await crud.update_property(db, prop, reno_phase="cleaning", unique_id=None)
    assert prop.reno_phase == "cleaning"
    assert prop.unique_id == "SP-1"


async def test_probe_reports_inspection_type(db):
    caps = await crud.probe_schema_capabilities(db)
    assert caps.has_inspection_type
    assert "public_link_id" in caps.inspection_columns


async def test_find_inspection_filters_by_type(db):
    prop = await crud.create_property(db, label="x")
    caps = await crud.probe_schema_capabilities(db)
    initial = await crud.create_inspection(db, prop.id, "initial", caps, has_elevator=True)
    final = await crud.create_inspection(db, prop.id, "final", caps)

    found = await crud.find_inspection(db, prop.id, "initial", caps)
    assert found.id == initial.id
    assert found.has_elevator is True
    assert found.public_link_id
    assert (await crud.find_inspection(db, prop.id, "final", caps)).id == final.id
    assert await crud.find_inspection(db, prop.id, "intermediate", caps) is None


async def test_legacy_schema_falls_back_to_latest(legacy_db):
    caps = await crud.probe_schema_capabilities(legacy_db)
    assert not caps.has_inspection_type

    prop = await crud.create_property(legacy_db, label="x")
    first = await crud.create_inspection(legacy_db, prop.id, "initial", caps)
    second = await crud.create_inspection(legacy_db, prop.id, "final", caps)
    assert first.inspection_type is None

    found = await crud.find_inspection(legacy_db, prop.id, "initial", caps)
    assert found.id == second.id
    assert await crud.complete_inspection(legacy_db, second.id, caps, completed_by="ana")


async def test_complete_inspection(db):
    prop = await crud.create_property(db, label="x")
    caps = await crud.probe_schema_capabilities(db)
    insp = await crud.create_inspection(db, prop.id, "initial", caps)
    assert await crud.complete_inspection(db, insp.id, caps, completed_by="ana")
    found = await crud.find_inspection(db, prop.id, "initial", caps)
    assert found.inspection_status == "completed"
    assert found.completed_by == "ana"
    assert found.completed_at is not None
    assert not await crud.complete_inspection(db, "missing", caps)


async def _zone(db):
    prop = await crud.create_property(db, label="x")
    caps = await crud.probe_schema_capabilities(db)
    insp = await crud.create_inspection(db, prop.id, "initial", caps)
    zones = await crud.create_zones(db, [ZoneCreate(inspection_id=insp.id, zone_type="salon", zone_name="Salón")])
    return insp, zones[0]


async def test_upsert_element_is_idempotent(db):
    insp, zone = await _zone(db)
    row = ElementUpsert(zone_id=zone.id, element_name="acabados", condition="buen_estado", notes="ok")
    first = await crud.upsert_element(db, row)
    second = await crud.upsert_element(db, row)
    assert first.id == second.id
    assert await crud.count_rows_for_inspection(db, insp.id) == (1, 1)


async def test_upsert_element_overwrites_every_field(db):
    insp, zone = await _zone(db)
    await crud.upsert_element(db, ElementUpsert(
        zone_id=zone.id, element_name="acabados", condition="buen_estado", notes="ok",
        image_urls=["https://cdn/a.jpg"],
    ))
    await crud.upsert_element(db, ElementUpsert(zone_id=zone.id, element_name="acabados"))
    elements = await crud.list_elements_for_inspection(db, insp.id)
    assert len(elements) == 1
    assert elements[0].condition is None
    assert elements[0].notes is None
    assert elements[0].image_urls is None


async def test_deleting_inspection_cascades(db):
    insp, zone = await _zone(db)
    await crud.upsert_element(db, ElementUpsert(zone_id=zone.id, element_name="acabados"))
    await db.execute(delete(Inspection.__table__).where(Inspection.__table__.c.id == insp.id))
    await db.commit()
    assert (await db.execute(select(Zone))).scalars().all() == []
    assert (await db.execute(select(Element))).scalars().all() == []
