"""
Intelligence API Tests

Test Categories:
1. Health
2. Analyses
3. Outcomes
4. Insights and Success Rates
5. Patterns and Reports
6. Maintenance
7. Storage Failures
"""

import pytest
from fastapi.testclient import TestClient

import intelligence.intelligence_manager as intelligence_manager
from intelligence import __version__
from intelligence.analysis_store import AnalysisStore
from intelligence.intelligence_manager import IntelligenceManager
from intelligence.main import app
from intelligence.pattern_engine import PatternEngine

from tests.conftest import S55D, S49, S464, S55D_TYPE, S49_TYPE


@pytest.fixture
def client(store, monkeypatch, tmp_path):
    """Client over a manager backed by temp files."""
    monkeypatch.setattr(
        intelligence_manager, "_manager", IntelligenceManager(store=store, engine=PatternEngine())
    )
    monkeypatch.setattr("intelligence.insight_presenter.REPORTS_DIR", tmp_path / "reports")
    return TestClient(app)


@pytest.fixture
def broken_client(tmp_path, monkeypatch):
    """Client whose analysis file cannot be read."""
    directory = tmp_path / "analyses.jsonl"
    directory.mkdir()
    store = AnalysisStore(
        analyses_file=directory,
        outcomes_file=tmp_path / "outcomes.jsonl",
        patterns_file=tmp_path / "patterns.jsonl",
    )
    monkeypatch.setattr(
        intelligence_manager, "_manager", IntelligenceManager(store=store, engine=PatternEngine())
    )
    return TestClient(app)


def _post_analysis(client, findings, **extra):
    response = client.post("/analyses", json={"findings": findings, **extra})
    assert response.status_code == 200
    return response.json()


def _post_outcome(client, analysis_id, outcome="evidence excluded", defects=(S55D_TYPE,), date="2024-03-01"):
    return client.post(
        f"/analyses/{analysis_id}/outcomes",
        json={"outcome": outcome, "defects_raised": list(defects), "date": date},
    )


# =============================================================================
# 1. Health
# =============================================================================

class TestHealth:
    """Service status endpoints."""

    def test_root(self, client):
        data = client.get("/").json()
        assert data["status"] == "running"
        assert data["version"] == __version__

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["components"]["storage"] == "operational"
        assert data["statistics"]["analyses"] == 0
        assert "outcome_learning" in data["capabilities"]


# =============================================================================
# 2. Analyses
# =============================================================================

class TestAnalyses:
    """POST /analyses records and returns insights."""

    def test_first_analysis(self, client):
        data = _post_analysis(client, [S55D], fileName="brief.pdf")
        assert data["analysis_id"] == 1
        assert data["total_analyses"] == 1
        assert data["insights"]["trends"]["status"] == "insufficient_data"
        assert len(data["insights"]["novel_issues"]) == 1
        assert data["outcome_checklist"][0]["type"] == S55D_TYPE
        assert "Real-Time Intelligence Insights" in data["rendered"]

    def test_preset_findings(self, client):
        data = _post_analysis(client, [], phases={"presetAnalysis": [{"findings": [S49]}]})
        assert data["insights"]["compliance_metrics"]["total_issues"] == 1

    def test_recurring_after_three(self, client):
        for _ in range(3):
            data = _post_analysis(client, [S55D])
        assert data["insights"]["recurring"][0]["count"] == 3
        assert data["insights"]["recommendations"][0]["priority"] == 1
        assert "CREATE MANDATORY CHECKLIST" in data["rendered"]

    def test_list(self, client):
        _post_analysis(client, [S55D], fileName="a.pdf")
        _post_analysis(client, [S49], fileName="b.pdf")
        data = client.get("/analyses").json()
        assert data["count"] == 2
        assert [a["file_name"] for a in data["analyses"]] == ["a.pdf", "b.pdf"]


# =============================================================================
# 3. Outcomes
# =============================================================================

class TestOutcomes:
    """Outcome validation and learning."""

    def test_record(self, client):
        _post_analysis(client, [S55D])
        response = _post_outcome(client, 1)
        assert response.status_code == 200
        recorded = response.json()["outcome"]
        assert recorded["id"] == 1
        assert recorded["timestamp"] is not None

        listed = client.get("/analyses/1/outcomes").json()
        assert listed["count"] == 1
        assert listed["outcomes"][0] == recorded
        assert client.get("/outcomes").json()["count"] == 1

    @pytest.mark.parametrize("payload", [
        {"outcome": "won", "defects_raised": [S55D_TYPE], "date": "2024-03-01"},
        {"defects_raised": [S55D_TYPE], "date": "2024-03-01"},
        {"outcome": "settled", "defects_raised": [S55D_TYPE]},
        {"outcome": "settled", "defects_raised": [], "date": "2024-03-01"},
    ])
    def test_invalid_is_400(self, client, payload):
        _post_analysis(client, [S55D])
        response = client.post("/analyses/1/outcomes", json=payload)
        assert response.status_code == 400
        assert client.get("/outcomes").json()["count"] == 0

    def test_unknown_analysis_is_404(self, client):
        assert _post_outcome(client, 99).status_code == 404

    def test_effective_arguments_as_text(self, client):
        _post_analysis(client, [S55D])
        response = client.post("/analyses/1/outcomes", json={
            "outcome": "case dismissed",
            "defects_raised": [S55D_TYPE],
            "date": "2024-03-01",
            "effective_arguments": "First argument\nSecond argument",
        })
        assert response.json()["outcome"]["effective_arguments"] == ["First argument", "Second argument"]


# =============================================================================
# 4. Insights and Success Rates
# =============================================================================

class TestInsights:
    """Read-only insight views."""

    def test_insights_do_not_save(self, client):
        _post_analysis(client, [S55D])
        data = client.get("/insights").json()
        assert data["compliance_metrics"]["total_analyses"] == 1
        assert "rendered" in data
        assert client.get("/analyses").json()["count"] == 1

    def test_views(self, client):
        for findings in ([S55D], [S55D], [S55D, S49, S464], [S55D, S49, S464]):
            _post_analysis(client, findings)

        assert client.get("/insights/recurring").json()["count"] == 1
        assert client.get("/insights/trends").json()["trends"]["direction"] == "WORSENING"
        assert client.get("/insights/novel").json()["count"] == 0
        recs = client.get("/insights/recommendations").json()
        assert recs["advisory_only"] is True
        assert recs["count"] == 1
        metrics = client.get("/insights/compliance").json()["compliance_metrics"]
        assert metrics["total_issues"] == 8
        assert metrics["most_common_issue"] == S55D_TYPE

    def test_success_rates(self, client):
        _post_analysis(client, [S55D])
        _post_outcome(client, 1, outcome="evidence excluded")
        _post_outcome(client, 1, outcome="evidence admitted")
        data = client.get("/success-rates").json()
        assert data["count"] == 1
        assert data["success_rates"][0]["success_rate"] == 50.0

    def test_prioritize_direct(self, client):
        _post_analysis(client, [S55D])
        for _ in range(3):
            _post_outcome(client, 1)
        data = client.post("/defects/prioritize", json={"defects": [S49, S55D]}).json()
        by_type = {d["type"]: d for d in data["defects"]}
        assert by_type[S55D_TYPE]["has_historical_data"] is True
        assert by_type[S55D_TYPE]["success_rate"] == 100.0
        assert by_type[S49_TYPE]["has_historical_data"] is False

    def test_prioritize_stored_analysis(self, client):
        _post_analysis(client, [S55D, S49])
        data = client.post("/defects/prioritize", json={"analysis_id": 1}).json()
        assert data["count"] == 2
        assert client.post("/defects/prioritize", json={"analysis_id": 9}).status_code == 404


# =============================================================================
# 5. Patterns and Reports
# =============================================================================

class TestPatternsAndReports:
    """Pattern log, learned patterns and reports."""

    def test_patterns(self, client):
        _post_analysis(client, [S464] * 4)
        assert client.get("/patterns").json()["count"] == 2
        filtered = client.get("/patterns", params={"pattern_type": "Severity Pattern"}).json()
        assert filtered["count"] == 1
        learned = client.get("/patterns/learned").json()
        assert {p["type"] for p in learned["patterns"]} == {"Recurring Issue", "Severity Pattern"}

    def test_report(self, client):
        _post_analysis(client, [S55D])
        _post_outcome(client, 1)
        data = client.get("/report").json()
        assert data["summary"]["total_analyses"] == 1
        assert data["summary"]["total_outcomes"] == 1
        assert data["success_rates"][0]["type"] == S55D_TYPE

    def test_export(self, client, tmp_path):
        _post_analysis(client, [S55D])
        data = client.post("/report/export").json()
        assert data["reports_dir"] == str(tmp_path / "reports")
        assert data["path"].endswith(".yaml")
        assert len(list((tmp_path / "reports").glob("intelligence-report-*.yaml"))) == 1


# =============================================================================
# 6. Maintenance
# =============================================================================

class TestMaintenance:
    """DELETE /data requires confirmation."""

    def test_clear_without_confirm(self, client):
        _post_analysis(client, [S55D])
        assert client.delete("/data").status_code == 400
        assert client.get("/analyses").json()["count"] == 1

    def test_clear_with_confirm(self, client):
        _post_analysis(client, [S55D])
        _post_outcome(client, 1)
        response = client.delete("/data", params={"confirm": "true"})
        assert response.json()["cleared"] is True
        assert client.get("/analyses").json()["count"] == 0
        assert client.get("/success-rates").json()["count"] == 0


# =============================================================================
# 7. Storage Failures
# =============================================================================

class TestStorageFailures:
    """Unreadable storage surfaces as 503."""

    def test_list_is_503(self, broken_client):
        response = broken_client.get("/analyses")
        assert response.status_code == 503
        assert "Failed to list analyses" in response.json()["detail"]

    def test_post_is_503(self, broken_client):
        response = broken_client.post("/analyses", json={"findings": [S55D]})
        assert response.status_code == 503

    def test_health_degraded(self, broken_client):
        data = broken_client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["components"]["storage"] == "unavailable"
