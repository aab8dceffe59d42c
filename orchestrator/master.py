"""
ReportOrchestrator — runs one report generation request end to end,
passing structured outputs between stages and collecting logs/timing.

Usage:
    from orchestrator.master import ReportOrchestrator
    result = ReportOrchestrator(store).generate_report_sync(
        {"kind": "monthly", "year": 2025, "month": 1}
    )
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from config.settings import EVENT_STORE_TIMEOUT_SECONDS, MAX_CONCURRENT_QUERIES
from engine.aggregator import MetricsAggregator, validate_filters
from engine.archive import ReportArchive
from engine.base import BaseStage, StageLog
from engine.concurrency import gather_fail_fast
from engine.errors import DataSourceError, PersistenceError
from engine.event_store import CatalogCache, EventStore
from engine.growth import compute_growth
from engine.layout import DocumentLayoutEngine, LayoutInput
from engine.models import GrowthMetric, PeriodSpec, ReportDocument, ReportFilters
from engine.period import parse_period_spec, report_filename, resolve_period

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Outcome of one generation request."""
    job_id: str = ""
    status: str = "pending"          # pending | running | completed | failed
    total_duration_seconds: float = 0.0

    document: Optional[ReportDocument] = None
    report_id: Optional[str] = None
    persistence_error: Optional[str] = None
    filename: str = ""
    growth: List[GrowthMetric] = field(default_factory=list)

    stage_logs: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def archived(self) -> bool:
        return self.report_id is not None

    def summary_dict(self) -> Dict[str, Any]:
        """Serialisable summary for API responses."""
        doc = self.document
        return {
            "job_id": self.job_id,
            "status": self.status,
            "duration_seconds": self.total_duration_seconds,
            "report_id": self.report_id,
            "archived": self.archived,
            "persistence_error": self.persistence_error,
            "filename": self.filename,
            "period_label": doc.period_label if doc else None,
            "generated_at": doc.generated_at.isoformat() if doc else None,
            "page_count": doc.page_count if doc else 0,
            "page_sections": list(doc.page_sections) if doc else [],
            "parameters": doc.generation_parameters if doc else {},
            "growth": [
                {
                    "name": g.name,
                    "current": g.current_value,
                    "previous": g.previous_value,
                    "change": round(g.percentage_change, 2),
                }
                for g in self.growth
            ],
        }


class ReportOrchestrator:
    """Execute PeriodResolver → MetricsAggregator ×2 → Growth → Layout →
    Archive for a single request and return the document."""

    def __init__(
        self,
        store: EventStore,
        archive: Optional[ReportArchive] = None,
        catalog_cache: Optional[CatalogCache] = None,
        max_concurrent_queries: int = MAX_CONCURRENT_QUERIES,
        query_timeout: float = EVENT_STORE_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.archive = archive or ReportArchive()
        self.catalog_cache = catalog_cache or CatalogCache()
        self.max_concurrent_queries = max_concurrent_queries
        self.query_timeout = query_timeout

    async def generate_report(
        self,
        period_spec: Union[PeriodSpec, Dict[str, Any]],
        filters: Optional[ReportFilters] = None,
        include_charts: bool = True,
        owner_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> GenerationResult:
        spec = period_spec if isinstance(period_spec, PeriodSpec) else parse_period_spec(period_spec)
        filters = validate_filters(filters or ReportFilters())
        resolved = resolve_period(spec)

        result = GenerationResult(job_id=uuid.uuid4().hex[:12], status="running")
        start = time.perf_counter()
        parameters = {
            "period": spec.to_dict(),
            "filters": filters.to_dict(),
            "include_charts": include_charts,
        }

        try:
            # ── 1) Aggregation, current and previous windows ─────────
            semaphore = asyncio.Semaphore(self.max_concurrent_queries)
            current_agg, previous_agg = (
                MetricsAggregator(
                    self.store, self.catalog_cache, semaphore, self.query_timeout, label=label
                )
                for label in ("current", "previous")
            )
            try:
                current, previous = await asyncio.wait_for(
                    gather_fail_fast(
                        current_agg.aggregate(resolved.current, filters),
                        previous_agg.aggregate(resolved.previous, filters),
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                raise DataSourceError(f"aggregation timed out after {timeout:g}s", subquery="aggregation")
            finally:
                result.stage_logs.append(self._log_entry(current_agg))
                result.stage_logs.append(self._log_entry(previous_agg))

            # ── 2) Growth ────────────────────────────────────────────
            result.growth = compute_growth(current.totals, previous.totals)

            # ── 3) Layout ────────────────────────────────────────────
            layout = DocumentLayoutEngine()
            try:
                document: ReportDocument = await asyncio.to_thread(layout.run, LayoutInput(
                    spec=spec,
                    window=resolved.current,
                    previous_window=resolved.previous,
                    filters=filters,
                    bundle=current,
                    growth=result.growth,
                    include_charts=include_charts,
                    generated_at=datetime.now(),
                    parameters=parameters,
                ))
            finally:
                result.stage_logs.append(self._log_entry(layout))
            result.document = document
            result.filename = report_filename(spec)

        except Exception:
            result.status = "failed"
            logger.exception("Report generation failed for job %s", result.job_id)
            raise

        # ── 4) Archive ───────────────────────────────────────────────
        try:
            result.report_id = self.archive.save(parameters, document, owner_id)
        except PersistenceError as exc:
            result.persistence_error = str(exc)
            logger.warning("Report %s generated but not archived: %s", result.job_id, exc)

        result.status = "completed"
        result.total_duration_seconds = round(time.perf_counter() - start, 3)
        logger.info(
            "Report %s %s in %.2fs (%d pages)",
            result.job_id, result.status, result.total_duration_seconds, document.page_count,
        )
        return result

    def generate_report_sync(self, *args, **kwargs) -> GenerationResult:
        return asyncio.run(self.generate_report(*args, **kwargs))

    @staticmethod
    def _log_entry(stage: BaseStage) -> Dict[str, Any]:
        log: StageLog = stage.log
        return {
            "stage": log.stage_name,
            "status": log.status,
            "duration": log.duration_seconds,
            "messages": log.messages,
            "errors": log.errors,
        }
