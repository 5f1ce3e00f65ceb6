"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from renocheck.api.router import api_router
from renocheck.config import get_settings
from renocheck.db.engine import engine, init_db
from renocheck.dependencies import get_registry

_settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db(engine)
    Path(_settings.storage.base_dir).mkdir(parents=True, exist_ok=True)
    yield
    get_registry().close_all()
    await engine.dispose()


app = FastAPI(
    title="renocheck",
    description="Renovation inspection checklists kept in sync with the relational store and the CRM.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api_router)

# Uploaded attachments, served as {public_base_url}/{bucket}/{path}
app.mount("/storage", StaticFiles(directory=_settings.storage.base_dir, check_dir=False), name="storage")
