"""Top-level API router."""

from fastapi import APIRouter

from ardine.api.routes.access import router as access_router
from ardine.api.routes.admin import router as admin_router
from ardine.api.routes.health import router as health_router
from ardine.api.routes.invoices import router as invoices_router
from ardine.api.routes.me import router as me_router
from ardine.api.routes.projects import router as projects_router
from ardine.api.routes.teams import router as teams_router
from ardine.api.routes.time_entries import router as time_entries_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(me_router)
api_router.include_router(access_router)
api_router.include_router(admin_router)
api_router.include_router(teams_router)
api_router.include_router(projects_router)
api_router.include_router(time_entries_router)
api_router.include_router(invoices_router)
