"""
Insight Presenter Tests

Test Categories:
1. Comparison to Average
2. Section Rendering
3. Full Panel and Success Rates
4. Key Insight Lines
5. YAML Report Export
"""

import pytest
import yaml

from intelligence.insight_presenter import (
    compare_to_average,
    current_issue_count,
    render_comparison_section,
    render_trends_section,
    render_novel_issues_section,
    render_recommendations_section,
    render_metrics_section,
    render_insights,
    render_success_rates,
    key_insight_lines,
    export_report,
)
from intelligence.pattern_engine import PatternEngine

from tests.conftest import make_record, make_outcome, S55D, S49, S464, S55D_TYPE


def _rec(issue, priority=1, frequency=3):
    return {
        "issue": issue,
        "frequency": frequency,
        "severity": "HIGH",
        "priority": priority,
        "recommendation": f"DO SOMETHING about {issue}\nstep one",
        "statute": "unknown",
        "rule_id": "rule-x",
    }


# =============================================================================
# 1. Comparison to Average
# =============================================================================

class TestComparison:
    """+/-20% band around the historical average."""

    def test_worse(self):
        result = compare_to_average(6, 4.0)
        assert result["assessment"] == "worse"
        assert result["percent"] == 50
        assert result["text"] == "50% worse than average"

    def test_better(self):
        result = compare_to_average(2, 4.0)
        assert result["assessment"] == "better"
        assert result["text"] == "50% better than average"

    @pytest.mark.parametrize("count", [4, 5, 6])
    def test_within_band_is_neutral(self, count):
        assert compare_to_average(count, 5.0)["text"] == "About average"

    def test_zero_average_with_issues(self):
        result = compare_to_average(3, 0)
        assert result["assessment"] == "worse"
        assert result["percent"] is None
        assert result["text"] == "Worse than average"

    def test_zero_average_without_issues(self):
        assert compare_to_average(0, None)["assessment"] == "neutral"

    def test_current_count_prefers_summary(self):
        assert current_issue_count({"summary": {"totalFindings": 9}, "findings": [S55D]}) == 9
        assert current_issue_count({"findings": [S55D, S49]}) == 2
        assert current_issue_count(None) == 0

    def test_comparison_section(self):
        insights = {"compliance_metrics": {"average_issues_per_doc": 2.0}}
        text = render_comparison_section(insights, {"findings": [S55D] * 4})
        assert "This Document: 4 issues" in text
        assert "Your Average: 2.0 issues" in text
        assert "100% worse than average" in text


# =============================================================================
# 2. Section Rendering
# =============================================================================

class TestSections:
    """Each section degrades instead of failing on missing data."""

    def test_trends_insufficient(self):
        text = render_trends_section({"trends": {"status": "insufficient_data"}})
        assert "Need at least 3 analyses" in text

    @pytest.mark.parametrize("insights", [None, {}, {"trends": None}])
    def test_trends_missing(self, insights):
        assert "Need at least 3 analyses" in render_trends_section(insights)

    def test_trends_worsening(self):
        trends = {
            "status": "ok",
            "direction": "WORSENING",
            "message": "High-severity issues increased 200% in recent analyses",
            "recommendation": "Systematic review of documentation processes recommended",
            "first_avg": 1.0,
            "second_avg": 3.0,
        }
        text = render_trends_section({"trends": trends})
        assert text.startswith("⚠️ Trend Analysis")
        assert "increased 200%" in text
        assert "Recent average: 3.0" in text

    def test_novel_empty_renders_nothing(self):
        assert render_novel_issues_section({"novel_issues": []}) == ""
        assert render_novel_issues_section(None) == ""

    def test_novel_listed(self):
        novel = [{"type": S55D_TYPE, "severity": "HIGH", "message": "NEW ISSUE TYPE"}]
        text = render_novel_issues_section({"novel_issues": novel})
        assert f"[HIGH] {S55D_TYPE}" in text

    def test_recommendations_empty(self):
        assert "No recurring patterns detected yet" in render_recommendations_section({})

    def test_recommendations_top_three_and_more(self):
        recs = [_rec(f"Issue {i}") for i in range(5)]
        text = render_recommendations_section({"recommendations": recs})
        assert "Issue 2" in text
        assert "Issue 3" not in text
        assert "+ 2 more recommendations available" in text
        assert "Statute: Unknown" in text

    def test_recommendations_no_more_line_when_three(self):
        recs = [_rec(f"Issue {i}") for i in range(3)]
        assert "more recommendations" not in render_recommendations_section({"recommendations": recs})

    def test_metrics_hides_none_most_common(self):
        metrics = {
            "compliance_rate": 100.0,
            "total_analyses": 0,
            "critical_issues": 0,
            "high_issues": 0,
            "most_common_issue": "None",
            "most_common_issue_count": 0,
        }
        text = render_metrics_section({"compliance_metrics": metrics})
        assert "Compliance Score: 100.0%" in text
        assert "Most Common Issue" not in text

    def test_metrics_missing_fields_show_placeholder(self):
        text = render_metrics_section({})
        assert "Compliance Score: -" in text
        assert "Total Analyses: -" in text


# =============================================================================
# 3. Full Panel and Success Rates
# =============================================================================

class TestFullPanel:
    """Rendering real engine output end to end."""

    def test_render_insights_from_engine(self):
        history = [make_record(i, [S55D]) for i in (1, 2, 3)]
        insights = PatternEngine().analyze_patterns(history)
        text = render_insights(insights, current_analysis={"findings": [S55D]})

        assert text.startswith("🧠 Real-Time Intelligence Insights (3 analyses in database)")
        assert "Comparison to Your Average" in text
        assert "Issue frequency stable" in text
        assert "CREATE MANDATORY CHECKLIST" in text
        assert f"Most Common Issue: {S55D_TYPE} (3 occurrences)" in text
        assert "Novel Issues" not in text

    def test_render_insights_without_current(self):
        insights = PatternEngine().analyze_patterns([])
        text = render_insights(insights)
        assert "Comparison to Your Average" not in text
        assert "(0 analyses in database)" in text

    def test_success_rates_empty(self):
        assert render_success_rates([]) == "No court outcomes recorded yet."

    def test_success_rates_listed(self):
        engine = PatternEngine()
        engine.learn_from_outcome(make_outcome("case dismissed", [S55D_TYPE]))
        engine.learn_from_outcome(make_outcome("settled", [S55D_TYPE]))
        text = render_success_rates(engine.get_success_rates())
        assert f"{S55D_TYPE}: 50.0% (1/2 successful)" in text


# =============================================================================
# 4. Key Insight Lines
# =============================================================================

class TestKeyInsightLines:
    """Log summary after each analysis."""

    def test_lines_for_recurring_history(self):
        history = [make_record(i, [S55D]) for i in (1, 2, 3)]
        lines = key_insight_lines(PatternEngine().analyze_patterns(history))

        assert lines[0].startswith("Compliance Score: 95.0% over 3 analyses")
        assert any(line.startswith("Trend: STABLE") for line in lines)
        assert f"Recurring Defects (1 found): {S55D_TYPE} (3x)" in lines
        assert any(line.startswith(f"Recommendation: {S55D_TYPE} (3x) - CREATE MANDATORY CHECKLIST") for line in lines)

    def test_lines_for_single_analysis(self):
        lines = key_insight_lines(PatternEngine().analyze_patterns([make_record(1, [S464])]))
        assert not any(line.startswith("Trend:") for line in lines)
        assert lines[-1].startswith("Novel Issues (1 found)")

    def test_lines_for_nothing(self):
        assert len(key_insight_lines(None)) == 1


# =============================================================================
# 5. YAML Report Export
# =============================================================================

class TestExport:
    """Reports are written as YAML under the reports directory."""

    def test_export_report(self, tmp_path):
        report = {"summary": {"total_analyses": 3}, "recommendations": [_rec("Gap")]}
        path = export_report(report, reports_dir=tmp_path / "reports")

        assert path.parent == tmp_path / "reports"
        assert path.name.startswith("intelligence-report-")
        assert path.suffix == ".yaml"
        with open(path) as f:
            loaded = yaml.safe_load(f)
        assert loaded == report

    def test_export_uses_module_default(self, tmp_path, monkeypatch):
        monkeypatch.setattr("intelligence.insight_presenter.REPORTS_DIR", tmp_path)
        path = export_report({"summary": {}})
        assert path.parent == tmp_path
