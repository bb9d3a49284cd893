"""
Login audit - FastAPI Application

Reports Windows logins and groups registered on SQL Server that no longer
resolve in Active Directory, resolve to a different SID, or are disabled.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from loginaudit.routes import router
from loginaudit.settings import settings
from loginaudit.util.logging import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("loginaudit")
    logger.info("Login audit service starting up")
    logger.info("Directory server: %s", settings.LDAP_SERVER or "(per domain)")

    yield

    logger.info("Login audit service shutting down")


app = FastAPI(
    title="Login Audit",
    description=(
        "Validates SQL Server Windows logins and groups against Active "
        "Directory by name and SID."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health", tags=["health"])
def health_check() -> dict:
    """Simple liveness check."""
    return {"status": "healthy", "service": "loginaudit", "version": "0.1.0"}


def run() -> None:
    """Entry point for the ``loginaudit`` console script."""
    uvicorn.run(
        "loginaudit.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
    )
