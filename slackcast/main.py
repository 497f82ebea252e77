"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from slackcast import __version__
from slackcast.api import api_router
from slackcast.database import Base, engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure unified logging before anything else
    from slackcast.logging_config import setup_logging
    setup_logging("Server")

    logger = logging.getLogger(__name__)

    # Startup: create tables if they don't exist
    import slackcast.models  # noqa: F401
    Base.metadata.create_all(bind=engine)

    # Re-register every enabled schedule so a wiped or restarted queue heals itself
    try:
        from slackcast.services.registry import recover_registrations
        recovered = recover_registrations()
        logger.info("Recovered %d schedule registration(s)", recovered)
    except Exception:
        logger.exception("Failed to recover schedule registrations on startup")

    yield


app = FastAPI(title="Slackcast", version=__version__, lifespan=lifespan)

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("slackcast.main:app", host="0.0.0.0", port=8000, log_config=None)
