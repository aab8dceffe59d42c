"""
FastAPI application — main entry point.

Run with:  uvicorn api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import RequestLoggingMiddleware
from api.routes.reports import router as reports_router
from config.settings import BRAND_NAME, archive_on_disk

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-7s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("API")
if archive_on_disk():
    logger.info("Reports are archived on disk")
else:
    logger.info("Reports are archived in memory (lost on restart)")

# ── App ──────────────────────────────────────────────────────────────
app = FastAPI(
    title=f"{BRAND_NAME} Reports API",
    description="Generate periodic activity reports (PDF) from interaction "
                "events and retrieve archived reports.",
    version="1.0.0",
)

# ── Middleware ───────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Routes ───────────────────────────────────────────────────────────
app.include_router(reports_router, prefix="/api", tags=["Reports"])


@app.get("/", tags=["Health"])
async def health_check():
    """Health-check endpoint."""
    return {"status": "healthy", "service": BRAND_NAME}
