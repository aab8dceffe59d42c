import sys
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from api.main import app
from api.routes.reports import get_archive, get_event_store
from conftest import CATALOG, sample_records
from engine.archive import ArchiveScope, ReportArchive
from engine.event_store import GAME_CATALOG, InMemoryEventStore

JANUARY = {"kind": "monthly", "year": 2025, "month": 1}
ALICE = {"X-User-Id": "alice"}


class BrokenStore(InMemoryEventStore):
    async def query(self, kind, window, filters):
        raise TimeoutError("event store did not answer")


class TestReportsAPI:
    def setup_method(self):
        self.store = InMemoryEventStore(sample_records(), {GAME_CATALOG: CATALOG})
        self.archive = ReportArchive()
        app.dependency_overrides[get_event_store] = lambda: self.store
        app.dependency_overrides[get_archive] = lambda: self.archive
        self.client = TestClient(app)

    def teardown_method(self):
        app.dependency_overrides.clear()

    def generate(self, headers=ALICE, **body):
        body.setdefault("period", JANUARY)
        return self.client.post("/api/reports", json=body, headers=headers)

    def test_health(self):
        response = self.client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_request_id_is_echoed(self):
        response = self.client.get("/", headers={"X-Request-Id": "req-42"})
        assert response.headers["X-Request-Id"] == "req-42"
        assert self.client.get("/").headers["X-Request-Id"]

    def test_generate_report(self):
        response = self.generate(filters={"limit": 5})

        assert response.status_code == 201
        payload = response.json()
        assert payload["status"] == "completed"
        assert payload["archived"] is True
        assert payload["period_label"] == "January 2025"
        assert payload["download"] == f"/api/reports/{payload['report_id']}/pdf"
        assert payload["page_sections"][0] == "cover"
        assert len(payload["stage_logs"]) == 3

    def test_download_pdf(self):
        report_id = self.generate().json()["report_id"]

        response = self.client.get(f"/api/reports/{report_id}/pdf", headers=ALICE)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert "report-monthly-2025-01.pdf" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    def test_report_metadata(self):
        report_id = self.generate(include_charts=False).json()["report_id"]

        response = self.client.get(f"/api/reports/{report_id}", headers=ALICE)

        assert response.status_code == 200
        meta = response.json()
        assert meta["parameters"]["include_charts"] is False
        assert not any(s.startswith("chart:") for s in meta["page_sections"])

    def test_scope_headers(self):
        report_id = self.generate().json()["report_id"]
        url = f"/api/reports/{report_id}/pdf"

        assert self.client.get(url, headers={"X-User-Id": "bob"}).status_code == 404
        assert self.client.get(url).status_code == 404
        admin = {"X-User-Id": "bob", "X-Report-Scope": "all"}
        assert self.client.get(url, headers=admin).status_code == 200

    def test_list_reports(self):
        first = self.generate().json()["report_id"]
        self.generate(headers={"X-User-Id": "bob"})

        mine = self.client.get("/api/reports", headers=ALICE).json()["reports"]
        everything = self.client.get("/api/reports", headers={"X-Report-Scope": "all"}).json()["reports"]
        anonymous = self.client.get("/api/reports").json()["reports"]

        assert [r["report_id"] for r in mine] == [first]
        assert len(everything) == 2
        assert anonymous == []

    def test_invalid_period(self):
        response = self.generate(period={"kind": "monthly", "year": 2025, "month": 13})
        assert response.status_code == 422

        response = self.generate(period={"kind": "weekly", "year": 2025})
        assert response.status_code == 422

    def test_invalid_filters(self):
        response = self.generate(filters={"limit": 0})
        assert response.status_code == 422

    def test_event_store_failure(self):
        self.store = BrokenStore()

        response = self.generate()

        assert response.status_code == 502
        assert self.archive.list(scope=ArchiveScope(can_view_all=True)) == []

    def test_unknown_report(self):
        response = self.client.get(f"/api/reports/{'f' * 32}", headers=ALICE)
        assert response.status_code == 404
