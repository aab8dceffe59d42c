"""
Report routes — generate a report, list archived reports, and download
an archived PDF by id.

Caller identity arrives as headers set by the upstream auth layer:
``X-User-Id`` names the caller and ``X-Report-Scope: all`` grants
visibility over every archived report.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field

from config.settings import DEFAULT_RANK_LIMIT, EVENT_STORE_TIMEOUT_SECONDS
from engine.archive import ArchiveScope, ReportArchive, default_archive
from engine.errors import ConfigurationError, DataSourceError, PersistenceError, ReportNotFoundError
from engine.event_store import CatalogCache, EventStore, InMemoryEventStore
from engine.models import ReportFilters
from engine.period import parse_period_spec, report_filename
from orchestrator.master import ReportOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()

_archive = default_archive()
_event_store: EventStore = InMemoryEventStore()
_catalog_cache = CatalogCache()


# ── Dependencies ─────────────────────────────────────────────────────

def get_archive() -> ReportArchive:
    return _archive


def get_event_store() -> EventStore:
    return _event_store


def get_orchestrator(
    store: EventStore = Depends(get_event_store),
    archive: ReportArchive = Depends(get_archive),
) -> ReportOrchestrator:
    return ReportOrchestrator(store, archive, _catalog_cache)


def get_scope(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_report_scope: Optional[str] = Header(None, alias="X-Report-Scope"),
) -> ArchiveScope:
    return ArchiveScope(
        owner_id=x_user_id or None,
        can_view_all=(x_report_scope or "").strip().lower() == "all",
    )


# ── Schemas ──────────────────────────────────────────────────────────

class PeriodBody(BaseModel):
    kind: str
    year: int
    month: Optional[int] = None
    quarter: Optional[int] = None
    semester: Optional[int] = None


class FiltersBody(BaseModel):
    store_id: Optional[str] = None
    game_name: Optional[str] = None
    category: Optional[str] = None
    limit: int = DEFAULT_RANK_LIMIT


class GenerateRequest(BaseModel):
    period: PeriodBody
    filters: FiltersBody = Field(default_factory=FiltersBody)
    include_charts: bool = True


# ── Routes ───────────────────────────────────────────────────────────

@router.post("/reports", status_code=201)
async def generate_report(
    body: GenerateRequest,
    orchestrator: ReportOrchestrator = Depends(get_orchestrator),
    scope: ArchiveScope = Depends(get_scope),
):
    """Generate a report for the requested period and archive it.

    The response carries the archive id; a report that could not be
    archived is still described, with ``persistence_error`` set.
    """
    try:
        spec = parse_period_spec(body.period.model_dump())
        result = await orchestrator.generate_report(
            spec,
            ReportFilters(**body.filters.model_dump()),
            include_charts=body.include_charts,
            owner_id=scope.owner_id,
            timeout=EVENT_STORE_TIMEOUT_SECONDS * 2,
        )
    except ConfigurationError as exc:
        raise HTTPException(422, str(exc))
    except DataSourceError as exc:
        raise HTTPException(502, f"Event store unavailable: {exc}")

    summary = result.summary_dict()
    if result.report_id:
        summary["download"] = f"/api/reports/{result.report_id}/pdf"
    summary["stage_logs"] = result.stage_logs
    return summary


@router.get("/reports")
async def list_reports(
    limit: int = Query(50, ge=1, le=500),
    archive: ReportArchive = Depends(get_archive),
    scope: ArchiveScope = Depends(get_scope),
):
    """List archived reports visible to the caller, newest first."""
    try:
        reports = archive.list(limit, scope)
    except PersistenceError as exc:
        raise HTTPException(500, str(exc))
    return {
        "reports": [
            {
                "report_id": r.report_id,
                "period_label": r.period_label,
                "generated_at": r.generated_at.isoformat(),
                "parameters": r.parameters,
            }
            for r in reports
        ]
    }


@router.get("/reports/{report_id}")
async def get_report(
    report_id: str,
    archive: ReportArchive = Depends(get_archive),
    scope: ArchiveScope = Depends(get_scope),
):
    archived = _fetch(archive, report_id, scope)
    doc = archived.document
    return {
        "report_id": archived.report_id,
        "period_label": doc.period_label,
        "generated_at": doc.generated_at.isoformat(),
        "parameters": archived.parameters,
        "page_count": doc.page_count,
        "page_sections": list(doc.page_sections),
    }


@router.get("/reports/{report_id}/pdf")
async def download_report(
    report_id: str,
    archive: ReportArchive = Depends(get_archive),
    scope: ArchiveScope = Depends(get_scope),
):
    """Download the archived PDF."""
    archived = _fetch(archive, report_id, scope)
    filename = f"report-{report_id}.pdf"
    period = archived.parameters.get("period")
    if period:
        try:
            filename = report_filename(parse_period_spec(period))
        except ConfigurationError:
            logger.warning("Report %s has unreadable period parameters", report_id)
    return Response(
        content=archived.document.payload,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _fetch(archive: ReportArchive, report_id: str, scope: ArchiveScope):
    try:
        return archive.get(report_id, scope)
    except ReportNotFoundError:
        raise HTTPException(404, f"Report '{report_id}' not found.")
    except PersistenceError as exc:
        raise HTTPException(500, str(exc))
