"""
Analysis Intelligence - Insight Presenter

Renders pattern engine output as plain text for a human reader and exports
intelligence reports as YAML.

Every section accepts the insights either as an Insights object or as its
dict form, and degrades to a placeholder when a field is absent, empty or
a sentinel (insufficient trend data, "None" most common issue, unknown
statute).
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, List, Mapping

import yaml

from .analysis_model import (
    TrendDirection,
    TREND_STATUS_INSUFFICIENT,
    STATUTE_UNKNOWN,
    STATUTE_UNKNOWN_DISPLAY,
    round_half_up,
)
from .finding_extractor import extract_findings

logger = logging.getLogger("insight_presenter")


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
REPORTS_DIR = Path(os.getenv("INTELLIGENCE_REPORTS_DIR", "data/reports"))

COMPARISON_BAND = 0.2  # +/-20% of the average counts as "about average"
TOP_RECOMMENDATIONS = 3
KEY_RECURRING_LIMIT = 3
KEY_RECOMMENDATION_LIMIT = 2
PLACEHOLDER = "-"

TREND_EMOJI = {
    TrendDirection.WORSENING.value: "⚠️",
    TrendDirection.IMPROVING.value: "✅",
    TrendDirection.STABLE.value: "➖",
}


def _as_dict(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def _as_list(value: Any) -> List[Dict[str, Any]]:
    if not value:
        return []
    return [_as_dict(v) for v in value]


def _display_statute(statute: Optional[str]) -> str:
    if not statute or statute == STATUTE_UNKNOWN:
        return STATUTE_UNKNOWN_DISPLAY
    return statute


def _fmt(value: Any) -> str:
    return PLACEHOLDER if value is None else str(value)


# -----------------------------------------------------------------------------
# Comparison to Average
# -----------------------------------------------------------------------------
def current_issue_count(current_analysis: Any) -> int:
    """Issue count of the analysis being shown, from its summary if present."""
    if isinstance(current_analysis, Mapping):
        summary = current_analysis.get("summary")
        if isinstance(summary, Mapping) and isinstance(summary.get("totalFindings"), int):
            return summary["totalFindings"]
    return len(extract_findings(current_analysis))


def compare_to_average(current_count: int, average: Optional[float]) -> Dict[str, Any]:
    """
    Place one document's issue count against the historical average.

    Outside the +/-20% band the document is better or worse than average.
    """
    average = float(average or 0.0)
    difference = current_count - average
    percent = int(round_half_up(abs(difference / average * 100), 0)) if average > 0 else None

    if difference > average * COMPARISON_BAND:
        assessment = "worse"
        text = f"{percent}% worse than average" if percent is not None else "Worse than average"
    elif difference < -average * COMPARISON_BAND:
        assessment = "better"
        text = f"{percent}% better than average"
    else:
        assessment = "neutral"
        text = "About average"

    return {
        "current": current_count,
        "average": average,
        "difference": difference,
        "percent": percent,
        "assessment": assessment,
        "text": text,
    }


def render_comparison_section(insights: Any, current_analysis: Any) -> str:
    metrics = _as_dict(_as_dict(insights).get("compliance_metrics"))
    comparison = compare_to_average(
        current_issue_count(current_analysis),
        metrics.get("average_issues_per_doc"),
    )
    icon = {"worse": "📈", "better": "📉"}.get(comparison["assessment"], "➖")
    return "\n".join([
        f"{icon} Comparison to Your Average",
        f"  This Document: {comparison['current']} issues",
        f"  Your Average: {comparison['average']:.1f} issues",
        f"  Assessment: {comparison['text']}",
    ])


# -----------------------------------------------------------------------------
# Sections
# -----------------------------------------------------------------------------
def render_trends_section(insights: Any) -> str:
    trends = _as_dict(_as_dict(insights).get("trends"))
    if not trends or trends.get("status") == TREND_STATUS_INSUFFICIENT or not trends.get("direction"):
        return "\n".join([
            "📊 Trend Analysis",
            "  Need at least 3 analyses to detect trends. Keep analyzing to unlock trend intelligence!",
        ])

    icon = TREND_EMOJI.get(trends["direction"], "➖")
    return "\n".join([
        f"{icon} Trend Analysis",
        f"  {_fmt(trends.get('message'))}",
        f"  Recommendation: {_fmt(trends.get('recommendation'))}",
        f"  Earlier average: {_fmt(trends.get('first_avg'))} high-severity issues",
        f"  Recent average: {_fmt(trends.get('second_avg'))} high-severity issues",
    ])


def render_novel_issues_section(insights: Any) -> str:
    """Empty string when nothing is new."""
    novel = _as_list(_as_dict(insights).get("novel_issues"))
    if not novel:
        return ""

    lines = [
        "🆕 Novel Issues Detected",
        "  These issue types have not been seen in your previous analyses:",
    ]
    for issue in novel:
        lines.append(f"  [{_fmt(issue.get('severity'))}] {_fmt(issue.get('type'))}")
        lines.append(f"    {_fmt(issue.get('message'))}")
    return "\n".join(lines)


def render_recommendations_section(insights: Any) -> str:
    recommendations = _as_list(_as_dict(insights).get("recommendations"))
    if not recommendations:
        return "\n".join([
            "💡 Recommendations",
            "  No recurring patterns detected yet. The system will generate recommendations "
            "as you analyze more documents.",
        ])

    lines = [
        "💡 Actionable Recommendations",
        "  Based on recurring patterns in your analyses:",
    ]
    for rec in recommendations[:TOP_RECOMMENDATIONS]:
        lines.append("")
        lines.append(f"  [{_fmt(rec.get('severity'))}] {_fmt(rec.get('issue'))} (occurred {_fmt(rec.get('frequency'))}x)")
        for text_line in str(rec.get("recommendation") or "").split("\n"):
            lines.append(f"    {text_line}")
        lines.append(f"    Statute: {_display_statute(rec.get('statute'))}")

    remaining = len(recommendations) - TOP_RECOMMENDATIONS
    if remaining > 0:
        lines.append("")
        lines.append(f"  + {remaining} more recommendations available")
    return "\n".join(lines)


def render_metrics_section(insights: Any) -> str:
    metrics = _as_dict(_as_dict(insights).get("compliance_metrics"))
    rate = metrics.get("compliance_rate")
    lines = [
        "📈 Your Compliance Metrics",
        f"  Compliance Score: {_fmt(rate)}{'%' if rate is not None else ''}",
        f"  Total Analyses: {_fmt(metrics.get('total_analyses'))}",
        f"  Critical Issues: {_fmt(metrics.get('critical_issues'))}",
        f"  High Issues: {_fmt(metrics.get('high_issues'))}",
    ]
    most_common = metrics.get("most_common_issue")
    if most_common and most_common != "None":
        lines.append(
            f"  Most Common Issue: {most_common} ({_fmt(metrics.get('most_common_issue_count'))} occurrences)"
        )
    return "\n".join(lines)


def render_insights(insights: Any, current_analysis: Any = None) -> str:
    """
    Full insights panel as text.

    The comparison section is only shown when the current analysis is given.
    """
    metrics = _as_dict(_as_dict(insights).get("compliance_metrics"))
    sections = [
        f"🧠 Real-Time Intelligence Insights ({metrics.get('total_analyses', 0)} analyses in database)",
    ]
    if current_analysis is not None:
        sections.append(render_comparison_section(insights, current_analysis))
    sections.append(render_trends_section(insights))
    sections.append(render_novel_issues_section(insights))
    sections.append(render_recommendations_section(insights))
    sections.append(render_metrics_section(insights))
    return "\n\n".join(s for s in sections if s)


def render_success_rates(success_rates: Any) -> str:
    rates = _as_list(success_rates)
    if not rates:
        return "No court outcomes recorded yet."
    lines = ["⚖️ Court Success Rates"]
    for stats in rates:
        lines.append(
            f"  {_fmt(stats.get('type'))}: {_fmt(stats.get('success_rate'))}% "
            f"({_fmt(stats.get('successful'))}/{_fmt(stats.get('total_raised'))} successful)"
        )
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# Key Insight Log Lines
# -----------------------------------------------------------------------------
def key_insight_lines(insights: Any) -> List[str]:
    """Short summary lines for the log after each analysis."""
    data = _as_dict(insights)
    metrics = _as_dict(data.get("compliance_metrics"))
    trends = _as_dict(data.get("trends"))

    lines = [
        f"Compliance Score: {_fmt(metrics.get('compliance_rate'))}% over "
        f"{_fmt(metrics.get('total_analyses'))} analyses "
        f"(avg {_fmt(metrics.get('average_issues_per_doc'))} issues, "
        f"{_fmt(metrics.get('critical_issues'))} critical, {_fmt(metrics.get('high_issues'))} high)",
    ]

    if trends.get("direction"):
        lines.append(f"Trend: {trends['direction']} - {_fmt(trends.get('message'))}")

    recurring = _as_list(data.get("recurring"))
    if recurring:
        top = ", ".join(f"{r.get('type')} ({r.get('count')}x)" for r in recurring[:KEY_RECURRING_LIMIT])
        lines.append(f"Recurring Defects ({len(recurring)} found): {top}")

    for rec in _as_list(data.get("recommendations"))[:KEY_RECOMMENDATION_LIMIT]:
        headline = str(rec.get("recommendation") or "").split("\n")[0]
        lines.append(f"Recommendation: {rec.get('issue')} ({rec.get('frequency')}x) - {headline}")

    novel = _as_list(data.get("novel_issues"))
    if novel:
        types = ", ".join(f"{n.get('type')} [{n.get('severity')}]" for n in novel)
        lines.append(f"Novel Issues ({len(novel)} found): {types}")

    return lines


# -----------------------------------------------------------------------------
# Report Export
# -----------------------------------------------------------------------------
def export_report(report: Any, reports_dir: Optional[Path] = None) -> Path:
    """
    Write an intelligence report to a timestamped YAML file.

    Returns:
        Path of the written file
    """
    reports_dir = reports_dir or REPORTS_DIR
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    file_path = reports_dir / f"intelligence-report-{stamp}.yaml"

    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, 'w') as f:
        yaml.safe_dump(_as_dict(report), f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    logger.info(f"Written intelligence report: {file_path}")
    return file_path
