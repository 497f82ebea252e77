"""FastAPI router aggregation."""

from fastapi import APIRouter

from slackcast.api.health import router as health_router
from slackcast.api.jobs import router as jobs_router

api_router = APIRouter()

api_router.include_router(jobs_router, tags=["jobs"])
api_router.include_router(health_router, tags=["health"])
