"""CLI for renocheck: create tables, seed properties, inspect checklist status."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys


async def cmd_init_db(args):
    from renocheck.db.engine import engine, init_db
    from renocheck.config import get_settings
    from renocheck.services.blob_store import BlobStore

    await init_db(engine)
    await engine.dispose()
    bucket = BlobStore.from_config(get_settings().storage).create_bucket()
    print(f"Database ready, storage bucket at {bucket}")


async def cmd_create_property(args):
    from renocheck.db import crud
    from renocheck.db.engine import async_session_factory, engine, init_db

    await init_db(engine)
    async with async_session_factory() as db:
        prop = await crud.create_property(
            db, args.label, address=args.address,
            bedrooms=args.bedrooms, bathrooms=args.bathrooms,
            has_elevator=args.elevator, unique_id=args.unique_id,
        )
    await engine.dispose()
    print(f"Property created: {prop.label} (id={prop.id})")


async def cmd_status(args):
    from renocheck.db.engine import engine
    from renocheck.dependencies import get_registry
    from renocheck.schemas import ChecklistType
    from renocheck.services.checklist_progress import finalize_progress, overall_progress
    from renocheck.services.checklist_validation import first_incomplete_section, unreported_sections
    from renocheck.services.inspection_sync import UnrecoverableSyncError

    session = get_registry().get(args.property_id, ChecklistType(args.type))
    try:
        document = await session.initialize()
    except UnrecoverableSyncError as exc:
        print(f"Cannot load checklist: {exc}")
        sys.exit(1)
    finally:
        session.close()

    print(f"Inspection: {session.inspection.id} ({session.inspection.inspection_status})")
    print(f"Progress: {overall_progress(document)}% (finalize: {finalize_progress(document)}%)")
    incomplete = first_incomplete_section(document)
    if incomplete is None:
        print("All sections reported")
    else:
        print(f"Next missing: {incomplete.message}")
        print("Unreported sections: " + ", ".join(s.value for s in unreported_sections(document)))
    await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="renocheck CLI")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Create tables and the storage bucket")

    cp = subparsers.add_parser("create-property", help="Create a property")
    cp.add_argument("--label", required=True)
    cp.add_argument("--address", default="")
    cp.add_argument("--bedrooms", type=int, default=0)
    cp.add_argument("--bathrooms", type=int, default=0)
    cp.add_argument("--elevator", action=argparse.BooleanOptionalAction, default=None)
    cp.add_argument("--unique-id", default=None, help="CRM business key")

    st = subparsers.add_parser("status", help="Show checklist progress and the next missing field")
    st.add_argument("property_id")
    st.add_argument("--type", default="reno_initial", choices=["reno_initial", "reno_intermediate", "reno_final"])

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    from renocheck.config import get_settings
    logging.basicConfig(
        level=(args.log_level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "init-db":
        asyncio.run(cmd_init_db(args))
    elif args.command == "create-property":
        asyncio.run(cmd_create_property(args))
    elif args.command == "status":
        asyncio.run(cmd_status(args))


if __name__ == "__main__":
    main()
