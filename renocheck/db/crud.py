"""CRUD operations for properties, inspections, zones and elements."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, inspect, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from renocheck.models import Element, Inspection, Property, Zone
from renocheck.models.base import new_id, utcnow
from renocheck.schemas import ElementUpsert, InspectionRead, SchemaCapabilities, ZoneCreate

logger = logging.getLogger(__name__)

_inspections = Inspection.__table__


# ── Property ─────────────────────────────────────────────

async def create_property(
    db: AsyncSession, label: str, address: str = "",
    bedrooms: int = 0, bathrooms: int = 0, has_elevator: bool | None = None,
    unique_id: str | None = None, crm_record_id: str | None = None,
) -> Property:
    prop = Property(
        label=label, address=address, bedrooms=bedrooms, bathrooms=bathrooms,
        has_elevator=has_elevator, unique_id=unique_id, crm_record_id=crm_record_id,
    )
    db.add(prop)
    await db.commit()
    await db.refresh(prop)
    return prop


async def get_property(db: AsyncSession, property_id: str) -> Property | None:
    return await db.get(Property, property_id)


async def list_properties(db: AsyncSession) -> list[Property]:
    result = await db.execute(select(Property).order_by(Property.created_at.desc()))
    return list(result.scalars().all())


async def update_property(db: AsyncSession, prop: Property, **kwargs) -> Property:
    for k, v in kwargs.items():
        if v is not None:
            setattr(prop, k, v)
    await db.commit()
    await db.refresh(prop)
    return prop


# ── Schema capabilities ──────────────────────────────────

async def probe_schema_capabilities(db: AsyncSession) -> SchemaCapabilities:
    """Report which ``inspections`` columns the connected database really has."""
    conn = await db.connection()
    columns = await conn.run_sync(
        lambda sync_conn: [c["name"] for c in inspect(sync_conn).get_columns("inspections")]
    )
    caps = SchemaCapabilities(inspection_columns=frozenset(columns))
    if not caps.has_inspection_type:
        logger.warning("inspections.inspection_type is missing; falling back to most-recent lookups")
    return caps


def _present(caps: SchemaCapabilities, values: dict) -> dict:
    return {k: v for k, v in values.items() if k in caps.inspection_columns}


# ── Inspection ───────────────────────────────────────────

async def find_inspection(
    db: AsyncSession, property_id: str, inspection_type: str, caps: SchemaCapabilities,
) -> InspectionRead | None:
    """Latest inspection of this type, or latest of any type on legacy schemas."""
    cols = [c for c in _inspections.c if c.name in caps.inspection_columns]
    stmt = select(*cols).where(_inspections.c.property_id == property_id)
    if caps.has_inspection_type:
        stmt = stmt.where(_inspections.c.inspection_type == inspection_type)
    order_col = _inspections.c.created_at if "created_at" in caps.inspection_columns else _inspections.c.id
    stmt = stmt.order_by(order_col.desc()).limit(1)
    row = (await db.execute(stmt)).mappings().first()
    return InspectionRead(**row) if row else None


async def create_inspection(
    db: AsyncSession, property_id: str, inspection_type: str, caps: SchemaCapabilities,
    has_elevator: bool | None = None, created_by: str | None = None,
) -> InspectionRead:
    values = _present(caps, {
        "id": new_id(),
        "property_id": property_id,
        "inspection_type": inspection_type,
        "inspection_status": "in_progress",
        "has_elevator": has_elevator,
        "public_link_id": str(uuid.uuid4()),
        "created_by": created_by,
        "created_at": utcnow(),
    })
    await db.execute(insert(_inspections).values(**values))
    await db.commit()
    return InspectionRead(**values)


async def complete_inspection(
    db: AsyncSession, inspection_id: str, caps: SchemaCapabilities, completed_by: str | None = None,
) -> bool:
    values = _present(caps, {
        "inspection_status": "completed",
        "completed_at": utcnow(),
        "completed_by": completed_by,
    })
    result = await db.execute(
        update(_inspections).where(_inspections.c.id == inspection_id).values(**values)
    )
    await db.commit()
    return result.rowcount > 0


# ── Zone ─────────────────────────────────────────────────

async def create_zones(db: AsyncSession, zones: list[ZoneCreate]) -> list[Zone]:
    created = [Zone(**z.model_dump()) for z in zones]
    db.add_all(created)
    await db.commit()
    for z in created:
        await db.refresh(z)
    return created


async def list_zones(db: AsyncSession, inspection_id: str) -> list[Zone]:
    result = await db.execute(
        select(Zone).where(Zone.inspection_id == inspection_id).order_by(Zone.created_at, Zone.id)
    )
    return list(result.scalars().all())


# ── Element ──────────────────────────────────────────────

async def list_elements_for_inspection(db: AsyncSession, inspection_id: str) -> list[Element]:
    result = await db.execute(
        select(Element)
        .join(Zone, Element.zone_id == Zone.id)
        .where(Zone.inspection_id == inspection_id)
        .order_by(Element.zone_id, Element.element_name)
    )
    return list(result.scalars().all())


async def upsert_element(db: AsyncSession, row: ElementUpsert) -> Element:
    """Insert or fully overwrite the element keyed by (zone_id, element_name)."""
    result = await db.execute(
        select(Element).where(Element.zone_id == row.zone_id, Element.element_name == row.element_name)
    )
    element = result.scalars().first()
    if element is None:
        element = Element(**row.model_dump())
        db.add(element)
    else:
        for k, v in row.model_dump(exclude={"zone_id", "element_name"}).items():
            setattr(element, k, v)
    await db.commit()
    await db.refresh(element)
    return element


async def count_rows_for_inspection(db: AsyncSession, inspection_id: str) -> tuple[int, int]:
    """(zone count, element count) for staleness checks."""
    zones = await db.scalar(select(func.count(Zone.id)).where(Zone.inspection_id == inspection_id))
    elements = await db.scalar(
        select(func.count(Element.id))
        .join(Zone, Element.zone_id == Zone.id)
        .where(Zone.inspection_id == inspection_id)
    )
    return zones or 0, elements or 0
