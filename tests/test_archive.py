import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from engine.archive import (
    ArchiveScope,
    FileSystemArchiveBackend,
    InMemoryArchiveBackend,
    ReportArchive,
)
from engine.errors import PersistenceError, ReportNotFoundError
from engine.models import ReportDocument

ALICE = ArchiveScope(owner_id="alice")
BOB = ArchiveScope(owner_id="bob")
ADMIN = ArchiveScope(can_view_all=True)


def document(day=1, label="January 2025"):
    return ReportDocument(
        payload=b"%PDF-1.4 fake",
        generation_parameters={"period": {"kind": "monthly", "year": 2025, "month": 1}},
        generated_at=datetime(2025, 2, day, 10, 0),
        period_label=label,
        page_sections=("cover", "executive_summary", "rankings", "trends"),
    )


class TestReportArchive:
    def setup_method(self):
        self.archive = ReportArchive(InMemoryArchiveBackend())

    def test_owner_can_read_back(self):
        doc = document()
        report_id = self.archive.save(doc.generation_parameters, doc, owner_id="alice")

        archived = self.archive.get(report_id, ALICE)
        assert archived.report_id == report_id
        assert archived.document.payload == doc.payload
        assert archived.document.page_sections == doc.page_sections
        assert archived.parameters == doc.generation_parameters

    def test_other_users_cannot_see_report(self):
        doc = document()
        report_id = self.archive.save(doc.generation_parameters, doc, owner_id="alice")

        with pytest.raises(ReportNotFoundError):
            self.archive.get(report_id, BOB)
        with pytest.raises(ReportNotFoundError):
            self.archive.get(report_id, ArchiveScope())
        assert self.archive.get(report_id, ADMIN).owner_id == "alice"

    def test_unknown_id(self):
        with pytest.raises(ReportNotFoundError):
            self.archive.get("0" * 32, ADMIN)

    def test_list_newest_first_within_scope(self):
        for day, owner in [(1, "alice"), (3, "bob"), (2, "alice")]:
            doc = document(day)
            self.archive.save(doc.generation_parameters, doc, owner_id=owner)

        mine = self.archive.list(scope=ALICE)
        everything = self.archive.list(scope=ADMIN)

        assert [r.generated_at.day for r in mine] == [2, 1]
        assert [r.generated_at.day for r in everything] == [3, 2, 1]
        assert len(self.archive.list(limit=1, scope=ADMIN)) == 1

    def test_anonymous_list_is_empty(self):
        doc = document()
        self.archive.save(doc.generation_parameters, doc)

        assert self.archive.list() == []
        assert self.archive.list(scope=ArchiveScope()) == []

    def test_backend_failure_is_persistence_error(self):
        backend = MagicMock()
        backend.put.side_effect = OSError("disk full")
        archive = ReportArchive(backend)

        with pytest.raises(PersistenceError, match="disk full"):
            archive.save({}, document())

    def test_backend_read_failure(self):
        backend = MagicMock()
        backend.get.side_effect = OSError("io error")

        with pytest.raises(PersistenceError):
            ReportArchive(backend).get("abc", ADMIN)


class TestFileSystemArchive:
    def test_round_trip_on_disk(self, tmp_path):
        archive = ReportArchive(FileSystemArchiveBackend(tmp_path))
        doc = document()
        report_id = archive.save(doc.generation_parameters, doc, owner_id="alice")

        assert (tmp_path / report_id / "report.pdf").read_bytes() == doc.payload
        assert (tmp_path / report_id / "meta.json").exists()

        reopened = ReportArchive(FileSystemArchiveBackend(tmp_path))
        archived = reopened.get(report_id, ALICE)
        assert archived.document.generated_at == doc.generated_at
        assert archived.document.period_label == "January 2025"
        assert archived.document.page_sections == doc.page_sections

    def test_list_from_disk(self, tmp_path):
        archive = ReportArchive(FileSystemArchiveBackend(tmp_path))
        for day in (1, 2):
            doc = document(day)
            archive.save(doc.generation_parameters, doc, owner_id="alice")
        other = document(3)
        archive.save(other.generation_parameters, other, owner_id="bob")

        assert [r.generated_at.day for r in archive.list(scope=ALICE)] == [2, 1]
        assert len(archive.list(scope=ADMIN)) == 3

    def test_incomplete_and_invalid_ids_are_missing(self, tmp_path):
        archive = ReportArchive(FileSystemArchiveBackend(tmp_path))
        (tmp_path / ("a" * 32)).mkdir()

        with pytest.raises(ReportNotFoundError):
            archive.get("a" * 32, ADMIN)
        with pytest.raises(ReportNotFoundError):
            archive.get("../etc", ADMIN)
        assert archive.list(scope=ADMIN) == []

    def test_missing_root_lists_nothing(self, tmp_path):
        archive = ReportArchive(FileSystemArchiveBackend(tmp_path / "nowhere"))

        assert archive.list(scope=ADMIN) == []
