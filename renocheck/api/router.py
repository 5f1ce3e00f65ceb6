"""Central router that includes all sub-routers."""

from fastapi import APIRouter

from renocheck.api.properties import router as properties_router
from renocheck.api.checklists import router as checklists_router

api_router = APIRouter()
api_router.include_router(properties_router)
api_router.include_router(checklists_router)
