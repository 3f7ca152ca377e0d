"""FastAPI Application Entry Point.

Configures the app, lifespan, CORS, and includes all route modules.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flowcore.config import TEMPORAL_ADDRESS
from flowcore.logging_config import get_api_logger

from . import temporal_adapter
from .database import close_db, init_db
from .temporal_adapter import close_temporal_client, init_temporal_client

logger = get_api_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage Temporal client and database lifecycle."""
    await init_db()
    await init_temporal_client()
    logger.info("CRM workflow API started")
    yield
    await close_temporal_client()
    await close_db()


app = FastAPI(title="CRM Workflow API", version="2.0.0", lifespan=lifespan)

# CORS configuration: configurable via CORS_ORIGINS env var (comma-separated)
_default_origins = "http://localhost:3000,http://127.0.0.1:3000"
CORS_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ORIGINS", _default_origins).split(",") if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
from .routes.tasks import router as tasks_router  # noqa: E402
from .routes.workflows import router as workflows_router  # noqa: E402
from .routes.contacts import router as contacts_router  # noqa: E402
from .routes.settings import router as settings_router  # noqa: E402

app.include_router(tasks_router)
app.include_router(workflows_router)
app.include_router(contacts_router)
app.include_router(settings_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "ok"}


@app.get("/health/temporal")
async def temporal_health_check():
    try:
        await temporal_adapter.get_client()
    except RuntimeError as e:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "address": TEMPORAL_ADDRESS, "error": str(e)},
        )
    return {"status": "ok", "address": TEMPORAL_ADDRESS}
