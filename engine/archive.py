"""
ReportArchive — persist generated reports and read them back.

The archive stores the PDF bytes together with the parameters that
produced them.  Visibility is decided upstream and passed in as an
ArchiveScope: privileged callers see every report, everyone else only
their own.  A report outside the caller's scope looks exactly like a
missing one.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from config.settings import ARCHIVE_DIR, archive_on_disk
from engine.errors import PersistenceError, ReportNotFoundError
from engine.models import ReportDocument

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
_REPORT_ID = re.compile(r"^[0-9a-f]{32}$")


@dataclass(frozen=True)
class ArchiveScope:
    owner_id: Optional[str] = None
    can_view_all: bool = False

    def allows(self, owner_id: Optional[str]) -> bool:
        return self.can_view_all or (self.owner_id is not None and self.owner_id == owner_id)


@dataclass(frozen=True)
class ArchiveRecord:
    report_id: str
    parameters: Dict[str, Any]
    payload: bytes = field(repr=False)
    generated_at: datetime
    period_label: str
    owner_id: Optional[str] = None
    page_sections: Tuple[str, ...] = ()


@dataclass
class ReportSummary:
    report_id: str
    parameters: Dict[str, Any]
    generated_at: datetime
    period_label: str
    owner_id: Optional[str] = None


@dataclass
class ArchivedReport:
    report_id: str
    parameters: Dict[str, Any]
    document: ReportDocument
    owner_id: Optional[str] = None


class ArchiveBackend(ABC):
    """Opaque key-value storage behind the archive."""

    @abstractmethod
    def put(self, record: ArchiveRecord) -> None:
        ...

    @abstractmethod
    def get(self, report_id: str) -> Optional[ArchiveRecord]:
        ...

    @abstractmethod
    def list(self, limit: int, owner_id: Optional[str] = None) -> List[ArchiveRecord]:
        """Newest first; ``owner_id=None`` lists every owner."""


class InMemoryArchiveBackend(ArchiveBackend):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, ArchiveRecord] = {}

    def put(self, record):
        with self._lock:
            self._records[record.report_id] = record

    def get(self, report_id):
        with self._lock:
            return self._records.get(report_id)

    def list(self, limit, owner_id=None):
        with self._lock:
            records = list(self._records.values())
        return _newest_first(records, limit, owner_id)


class FileSystemArchiveBackend(ArchiveBackend):
    """One directory per report: ``<root>/<id>/report.pdf`` and ``meta.json``.

    ``meta.json`` is written last, so a directory without it is an
    incomplete write and is ignored.
    """

    def __init__(self, root: Path = ARCHIVE_DIR) -> None:
        self.root = Path(root)

    def put(self, record):
        folder = self.root / record.report_id
        folder.mkdir(parents=True, exist_ok=True)
        (folder / "report.pdf").write_bytes(record.payload)
        meta = {
            "report_id": record.report_id,
            "parameters": record.parameters,
            "generated_at": record.generated_at.isoformat(),
            "period_label": record.period_label,
            "owner_id": record.owner_id,
            "page_sections": list(record.page_sections),
        }
        tmp = folder / "meta.json.tmp"
        tmp.write_text(json.dumps(meta, indent=2), encoding="utf-8")
        tmp.replace(folder / "meta.json")

    def get(self, report_id):
        if not _REPORT_ID.match(report_id):
            return None
        folder = self.root / report_id
        meta_path = folder / "meta.json"
        if not meta_path.exists():
            return None
        return self._load(folder, json.loads(meta_path.read_text(encoding="utf-8")))

    def list(self, limit, owner_id=None):
        if not self.root.exists():
            return []
        records = []
        for meta_path in self.root.glob("*/meta.json"):
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            if owner_id is not None and meta.get("owner_id") != owner_id:
                continue
            records.append(self._load(meta_path.parent, meta))
        return _newest_first(records, limit, owner_id)

    @staticmethod
    def _load(folder: Path, meta: Dict[str, Any]) -> ArchiveRecord:
        return ArchiveRecord(
            report_id=meta["report_id"],
            parameters=meta["parameters"],
            payload=(folder / "report.pdf").read_bytes(),
            generated_at=datetime.fromisoformat(meta["generated_at"]),
            period_label=meta["period_label"],
            owner_id=meta.get("owner_id"),
            page_sections=tuple(meta.get("page_sections", ())),
        )


def _newest_first(records: List[ArchiveRecord], limit: int, owner_id: Optional[str]) -> List[ArchiveRecord]:
    if owner_id is not None:
        records = [r for r in records if r.owner_id == owner_id]
    records.sort(key=lambda r: r.generated_at, reverse=True)
    return records[:limit]


class ReportArchive:
    """Scope-aware facade over an ArchiveBackend."""

    def __init__(self, backend: Optional[ArchiveBackend] = None) -> None:
        self.backend = backend or InMemoryArchiveBackend()

    def save(self, parameters: Dict[str, Any], document: ReportDocument,
             owner_id: Optional[str] = None) -> str:
        report_id = uuid.uuid4().hex
        record = ArchiveRecord(
            report_id=report_id,
            parameters=dict(parameters),
            payload=document.payload,
            generated_at=document.generated_at,
            period_label=document.period_label,
            owner_id=owner_id,
            page_sections=tuple(document.page_sections),
        )
        try:
            self.backend.put(record)
        except Exception as exc:
            logger.exception("Archiving report %s failed", report_id)
            raise PersistenceError(f"Could not archive report: {exc}") from exc
        logger.info("Archived report %s (%s, owner=%s)", report_id, document.period_label, owner_id)
        return report_id

    def get(self, report_id: str, scope: ArchiveScope) -> ArchivedReport:
        try:
            record = self.backend.get(report_id)
        except Exception as exc:
            raise PersistenceError(f"Could not read report {report_id}: {exc}") from exc
        if record is None or not scope.allows(record.owner_id):
            raise ReportNotFoundError(f"Report {report_id} not found")
        document = ReportDocument(
            payload=record.payload,
            generation_parameters=record.parameters,
            generated_at=record.generated_at,
            period_label=record.period_label,
            page_sections=record.page_sections,
        )
        return ArchivedReport(record.report_id, record.parameters, document, record.owner_id)

    def list(self, limit: int = DEFAULT_LIST_LIMIT, scope: Optional[ArchiveScope] = None) -> List[ReportSummary]:
        scope = scope or ArchiveScope()
        if not scope.can_view_all and scope.owner_id is None:
            return []
        owner = None if scope.can_view_all else scope.owner_id
        try:
            records = self.backend.list(limit, owner)
        except Exception as exc:
            raise PersistenceError(f"Could not list reports: {exc}") from exc
        return [
            ReportSummary(r.report_id, r.parameters, r.generated_at, r.period_label, r.owner_id)
            for r in records
        ]


def default_archive() -> ReportArchive:
    if archive_on_disk():
        return ReportArchive(FileSystemArchiveBackend(ARCHIVE_DIR))
    return ReportArchive(InMemoryArchiveBackend())
