"""Master API router mounted at /api/v1."""

from fastapi import APIRouter

from bugledger.api.routes import bug_reports, health

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(bug_reports.router)
