"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from rescue.core.config import settings
from rescue.db.session import engine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Wildlife Rescue Triage API",
    description="Injured-animal intake, AI first-aid triage and vet appointment calls",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# ============================================================================
# Routers
# ============================================================================

from rescue.routers import appointments, intakes, messages, twilio  # noqa: E402

app.include_router(intakes.router, prefix="/intakes", tags=["intakes"])
app.include_router(messages.router, prefix="/messages", tags=["messages"])

# Mixed paths: /intakes/{id}/appointment and /appointments/{id}
app.include_router(appointments.router, tags=["appointments"])

# Twilio Studio webhooks (signature-verified)
app.include_router(twilio.router, prefix="/api/v1/twilio", tags=["webhooks"])


@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
