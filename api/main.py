"""
api/main.py — FastAPI application entry point.

Run with:
    uvicorn api.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from api.endpoints.admin_routes import router as admin_router
from api.endpoints.contractor_routes import router as contractor_router
from api.endpoints.lead_routes import router as lead_router
from leadengine.exceptions import LeadEngineError
from leadengine.db.session import engine
from leadengine.logging_config import configure_logging
from leadengine.services.weights import CURRENT_WEIGHTS

logger = logging.getLogger(__name__)


# ── Lifespan ─────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown logic."""
    configure_logging()
    # Verify DB is reachable on startup
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database connection verified. Scoring weights %s active.", CURRENT_WEIGHTS.version)
    yield
    logger.info("Application shutting down.")


# ── App ───────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Lead Scoring & Assignment Engine",
    description=(
        "Scores homeowner leads from design-render activity, ranks them, and "
        "routes them to subscribed contractors by territory."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error handling ───────────────────────────────────────────────────────────

@app.exception_handler(LeadEngineError)
async def lead_engine_exception_handler(request: Request, exc: LeadEngineError):
    """Render every domain error as {error, message, details} with its mapped status."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ── Routers ──────────────────────────────────────────────────────────────────

app.include_router(lead_router, prefix="/leads", tags=["Leads"])
app.include_router(contractor_router, prefix="/contractors", tags=["Contractors"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])


# ── Health check ─────────────────────────────────────────────────────────────

@app.get("/health", tags=["System"])
def health_check():
    """Returns service liveness status."""
    return {"status": "ok", "service": "lead-scoring-engine", "scoring_version": CURRENT_WEIGHTS.version}


@app.get("/", tags=["System"])
def root():
    return {
        "message": "Lead Scoring & Assignment Engine is running.",
        "docs": "/docs",
    }
