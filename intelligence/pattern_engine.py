"""
Analysis Intelligence - Pattern Engine

Mines the accumulated analysis history for recurring defects, trend
verdicts, novel issues, compliance metrics and recommendations, and keeps
court success rates per defect type.

CONSTRAINTS:
- NO ML INFERENCE: Counting, averaging and a fixed rule table only
- 100% DETERMINISTIC: Same history = same insights
- READ-ONLY OVER HISTORY: Records are never modified
- EXPLICIT STATE: Success rates and learned patterns live in EngineState,
  owned by the engine instance, and are always rebuildable

This engine provides INSIGHT, not ACTION.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple, Iterable, Mapping

from .analysis_model import (
    Severity,
    TrendDirection,
    TREND_STATUS_OK,
    TREND_STATUS_INSUFFICIENT,
    HIGH_SEVERITIES,
    STATUTE_UNKNOWN,
    DEFECT_TYPE_UNKNOWN,
    Defect,
    AnalysisRecord,
    OutcomeRecord,
    DefectSuccessStats,
    LearnedPattern,
    EngineState,
    RecurringDefect,
    TrendAnalysis,
    NovelIssue,
    ComplianceMetrics,
    Recommendation,
    PrioritizedDefect,
    DocumentPattern,
    Insights,
    round_half_up,
)
from .finding_extractor import extract_findings, normalize_defect, normalize_record
from .recommendation_rules import (
    PRIORITY_GENERIC,
    GENERIC_MIN_FREQUENCY,
    GENERIC_RULE_ID,
    GENERIC_TEMPLATE,
    matching_rules,
)

logger = logging.getLogger("pattern_engine")


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
RECURRENCE_THRESHOLD = 3  # Occurrences before a defect is "recurring"
TREND_MIN_ANALYSES = 3
TREND_WINDOW = 5  # Most recent analyses considered for trends
TREND_WORSENING_FACTOR = 1.2
TREND_IMPROVING_FACTOR = 0.8
CONFIDENCE_THRESHOLD = 3  # Times raised before a success rate is trusted
STRONG_SUCCESS_RATE = 60.0
COMPLIANCE_PENALTY_PER_ISSUE = 5

# Legacy in-document detection
DOCUMENT_RECURRENCE_THRESHOLD = 3
DOCUMENT_EXAMPLE_LIMIT = 3
TEMPORAL_DENSITY_THRESHOLD = 5
CRITICAL_CLUSTER_THRESHOLD = 3

PATTERN_RECURRING_ISSUE = "Recurring Issue"
PATTERN_TEMPORAL = "Temporal Pattern"
PATTERN_SEVERITY = "Severity Pattern"

# Fixed advisory text
MSG_INSUFFICIENT_DATA = "Need at least 3 analyses to detect trends"
MSG_WORSENING = "High-severity issues increased {percent}% in recent analyses"
MSG_IMPROVING = "High-severity issues decreased {percent}%"
MSG_STABLE = "Issue frequency stable"
REC_WORSENING = "Systematic review of documentation processes recommended"
REC_IMPROVING = "Current processes appear effective - maintain practices"
REC_STABLE = "Continue monitoring"
MSG_NOVEL_ISSUE = 'NEW ISSUE TYPE: "{defect_type}" - First time detected in your analyses'
ADVICE_STRONG = "High success rate in court - strong defect to raise"
ADVICE_WEAK = "Lower success rate - ensure strong evidence before raising"
ADVICE_NO_DATA = "No historical outcome data for this defect type"
NO_COMMON_ISSUE = "None"


def _as_records(history: Iterable[Any]) -> List[AnalysisRecord]:
    """Accept stored records or raw analysis payloads, in the given order."""
    records = []
    for item in history or ():
        if isinstance(item, AnalysisRecord):
            records.append(item)
        elif isinstance(item, Mapping):
            records.append(normalize_record(item))
    return records


def _mean(values: List[int]) -> float:
    return sum(values) / len(values) if values else 0.0


# -----------------------------------------------------------------------------
# Pattern Engine
# -----------------------------------------------------------------------------
class PatternEngine:
    """
    Heuristic aggregation over a fully materialized analysis history.

    History is always passed in chronological order (oldest first). The
    engine never reads the store; callers load the history and hand it over.
    """

    def __init__(self, state: Optional[EngineState] = None):
        self._state = state if state is not None else EngineState()

    @property
    def state(self) -> EngineState:
        return self._state

    # -------------------------------------------------------------------------
    # Recurring Defects
    # -------------------------------------------------------------------------

    def find_recurring_defects(self, history: Iterable[Any]) -> List[RecurringDefect]:
        """
        Group defects by (type, statute) across the history.

        Groups with at least RECURRENCE_THRESHOLD occurrences are returned,
        most frequent first. Ties keep first-encountered order.
        """
        groups: Dict[Tuple[str, str], Dict[str, Any]] = {}

        for record in _as_records(history):
            for defect in record.findings:
                key = (defect.defect_type, defect.statute or STATUTE_UNKNOWN)
                group = groups.get(key)
                if group is None:
                    group = {
                        "severity": defect.severity,
                        "count": 0,
                        "timestamps": [],
                        "descriptions": [],
                        "analysis_ids": [],
                    }
                    groups[key] = group
                group["count"] += 1
                if record.timestamp:
                    group["timestamps"].append(record.timestamp)
                group["descriptions"].append(defect.description)
                group["analysis_ids"].append(record.analysis_id)

        recurring = [
            RecurringDefect(
                defect_type=defect_type,
                statute=statute,
                severity=group["severity"],
                count=group["count"],
                first_seen=min(group["timestamps"]) if group["timestamps"] else "",
                last_seen=max(group["timestamps"]) if group["timestamps"] else "",
                descriptions=tuple(group["descriptions"]),
                analysis_ids=tuple(group["analysis_ids"]),
            )
            for (defect_type, statute), group in groups.items()
            if group["count"] >= RECURRENCE_THRESHOLD
        ]
        recurring.sort(key=lambda r: r.count, reverse=True)
        return recurring

    # -------------------------------------------------------------------------
    # Trends
    # -------------------------------------------------------------------------

    def analyze_trends(self, history: Iterable[Any]) -> TrendAnalysis:
        """
        Compare high-severity density between the older and newer halves of
        the last TREND_WINDOW analyses.

        A zero older-half average is always STABLE: there is no baseline to
        grow from.
        """
        records = _as_records(history)
        if len(records) < TREND_MIN_ANALYSES:
            return TrendAnalysis(
                status=TREND_STATUS_INSUFFICIENT,
                analysis_count=len(records),
                message=MSG_INSUFFICIENT_DATA,
            )

        recent = records[-TREND_WINDOW:]
        counts = [
            sum(1 for d in record.findings if d.severity in HIGH_SEVERITIES)
            for record in recent
        ]
        split = len(counts) // 2
        first_avg = _mean(counts[:split])
        second_avg = _mean(counts[split:])

        if first_avg > 0 and second_avg > first_avg * TREND_WORSENING_FACTOR:
            percent = int(round_half_up((second_avg / first_avg - 1) * 100, 0))
            direction = TrendDirection.WORSENING
            message = MSG_WORSENING.format(percent=percent)
            recommendation = REC_WORSENING
            severity = Severity.HIGH.value
        elif first_avg > 0 and second_avg < first_avg * TREND_IMPROVING_FACTOR:
            percent = int(round_half_up((1 - second_avg / first_avg) * 100, 0))
            direction = TrendDirection.IMPROVING
            message = MSG_IMPROVING.format(percent=percent)
            recommendation = REC_IMPROVING
            severity = Severity.LOW.value
        else:
            percent = None
            direction = TrendDirection.STABLE
            message = MSG_STABLE
            recommendation = REC_STABLE
            severity = Severity.MEDIUM.value

        return TrendAnalysis(
            status=TREND_STATUS_OK,
            analysis_count=len(records),
            message=message,
            direction=direction.value,
            recommendation=recommendation,
            severity=severity,
            first_avg=round_half_up(first_avg),
            second_avg=round_half_up(second_avg),
            percent_change=percent,
        )

    # -------------------------------------------------------------------------
    # Novel Issues
    # -------------------------------------------------------------------------

    def identify_novel_issues(self, history: Iterable[Any]) -> List[NovelIssue]:
        """
        Report every defect in the latest analysis whose type never appeared
        in any earlier analysis. Repeats within the latest are all reported.
        """
        records = _as_records(history)
        if not records:
            return []

        latest = records[-1]
        known_types = {d.defect_type for record in records[:-1] for d in record.findings}

        return [
            NovelIssue(
                defect_type=defect.defect_type,
                severity=defect.severity,
                description=defect.description,
                statute=defect.statute,
                message=MSG_NOVEL_ISSUE.format(defect_type=defect.defect_type),
            )
            for defect in latest.findings
            if defect.defect_type not in known_types
        ]

    # -------------------------------------------------------------------------
    # Recommendations
    # -------------------------------------------------------------------------

    def generate_recommendations(self, history: Iterable[Any]) -> List[Recommendation]:
        """
        Attach rule-table advice to recurring defects.

        Every matching specialized rule contributes. A recurring group with
        no advice yet and at least GENERIC_MIN_FREQUENCY occurrences gets the
        generic advisory. Sorted by priority, then frequency (descending).
        """
        recommendations: List[Recommendation] = []

        for group in self.find_recurring_defects(history):
            for rule in matching_rules(group.defect_type):
                recommendations.append(Recommendation(
                    issue=group.defect_type,
                    frequency=group.count,
                    severity=rule.severity,
                    priority=rule.priority,
                    recommendation=rule.render(group),
                    statute=rule.statute,
                    rule_id=rule.rule_id,
                ))

            already_advised = any(r.issue == group.defect_type for r in recommendations)
            if not already_advised and group.count >= GENERIC_MIN_FREQUENCY:
                statute = group.statute if group.statute != STATUTE_UNKNOWN else "this requirement"
                recommendations.append(Recommendation(
                    issue=group.defect_type,
                    frequency=group.count,
                    severity=group.severity,
                    priority=PRIORITY_GENERIC,
                    recommendation=GENERIC_TEMPLATE.format(
                        defect_type=group.defect_type,
                        count=group.count,
                        statute=statute,
                    ),
                    statute=group.statute,
                    rule_id=GENERIC_RULE_ID,
                ))

        recommendations.sort(key=lambda r: (r.priority, -r.frequency))
        return recommendations

    # -------------------------------------------------------------------------
    # Compliance
    # -------------------------------------------------------------------------

    def calculate_compliance(self, history: Iterable[Any]) -> ComplianceMetrics:
        """Aggregate issue counts and a rough compliance score."""
        records = _as_records(history)
        if not records:
            return ComplianceMetrics(
                total_analyses=0,
                total_issues=0,
                average_issues_per_doc=0.0,
                compliance_rate=100.0,
                critical_issues=0,
                high_issues=0,
                most_common_issue=NO_COMMON_ISSUE,
                most_common_issue_count=0,
            )

        total_issues = 0
        critical = 0
        high = 0
        type_counts: Dict[str, int] = {}

        for record in records:
            total_issues += len(record.findings)
            for defect in record.findings:
                if defect.severity == Severity.CRITICAL.value:
                    critical += 1
                elif defect.severity == Severity.HIGH.value:
                    high += 1
                type_counts[defect.defect_type] = type_counts.get(defect.defect_type, 0) + 1

        most_common, most_common_count = NO_COMMON_ISSUE, 0
        for defect_type, count in type_counts.items():
            if count > most_common_count:
                most_common, most_common_count = defect_type, count

        average = round_half_up(total_issues / len(records))
        compliance = round_half_up(max(0.0, 100 - average * COMPLIANCE_PENALTY_PER_ISSUE))

        return ComplianceMetrics(
            total_analyses=len(records),
            total_issues=total_issues,
            average_issues_per_doc=average,
            compliance_rate=compliance,
            critical_issues=critical,
            high_issues=high,
            most_common_issue=most_common,
            most_common_issue_count=most_common_count,
        )

    # -------------------------------------------------------------------------
    # Combined Insights
    # -------------------------------------------------------------------------

    def analyze_patterns(self, history: Iterable[Any]) -> Insights:
        """Run every history-level analysis once over the same history."""
        records = _as_records(history)
        return Insights(
            recurring=tuple(self.find_recurring_defects(records)),
            trends=self.analyze_trends(records),
            recommendations=tuple(self.generate_recommendations(records)),
            novel_issues=tuple(self.identify_novel_issues(records)),
            compliance_metrics=self.calculate_compliance(records),
        )

    # -------------------------------------------------------------------------
    # Outcome Learning
    # -------------------------------------------------------------------------

    def learn_from_outcome(self, outcome: OutcomeRecord) -> None:
        """
        Fold one court outcome into the per-type success statistics.

        NOT idempotent: learning the same outcome twice counts it twice.
        Use replay_outcomes() to rebuild from the ledger.
        """
        successful = outcome.is_successful
        for defect_type in outcome.defects_raised:
            stats = self._state.success_rates.get(defect_type)
            if stats is None:
                stats = DefectSuccessStats(defect_type=defect_type)
                self._state.success_rates[defect_type] = stats

            stats.total_raised += 1
            if successful:
                stats.successful += 1
            else:
                stats.unsuccessful += 1
            stats.outcomes.append({
                "date": outcome.date,
                "outcome": outcome.outcome,
                "court_response": outcome.court_response,
                "effective_arguments": list(outcome.effective_arguments),
            })

    def replay_outcomes(self, outcomes: Iterable[OutcomeRecord]) -> int:
        """Clear the success statistics and rebuild them from a full ledger."""
        self._state.success_rates.clear()
        replayed = 0
        for outcome in outcomes:
            self.learn_from_outcome(outcome)
            replayed += 1
        logger.info(f"Replayed {replayed} outcomes into {len(self._state.success_rates)} defect types")
        return replayed

    def get_success_rates(self) -> List[DefectSuccessStats]:
        """All success statistics, highest success rate first."""
        stats = list(self._state.success_rates.values())
        stats.sort(key=lambda s: s.success_rate, reverse=True)
        return stats

    def prioritize_defects(self, defects: Iterable[Any]) -> List[PrioritizedDefect]:
        """
        Annotate current defects with their court track record.

        Defects with at least CONFIDENCE_THRESHOLD past outcomes are reordered
        by success rate among the positions they already hold. Defects
        without enough history stay where they are.
        """
        annotated: List[PrioritizedDefect] = []
        for raw in defects or ():
            defect = normalize_defect(raw)
            if defect is None:
                continue
            stats = self._state.success_rates.get(defect.defect_type)
            if stats is not None and stats.total_raised >= CONFIDENCE_THRESHOLD:
                rate = stats.success_rate
                annotated.append(PrioritizedDefect(
                    defect=defect,
                    has_historical_data=True,
                    recommendation=ADVICE_STRONG if rate > STRONG_SUCCESS_RATE else ADVICE_WEAK,
                    success_rate=rate,
                    times_raised=stats.total_raised,
                ))
            else:
                annotated.append(PrioritizedDefect(
                    defect=defect,
                    has_historical_data=False,
                    recommendation=ADVICE_NO_DATA,
                ))

        slots = [i for i, p in enumerate(annotated) if p.has_historical_data]
        ranked = sorted((annotated[i] for i in slots), key=lambda p: p.success_rate, reverse=True)
        for slot, entry in zip(slots, ranked):
            annotated[slot] = entry
        return annotated

    # -------------------------------------------------------------------------
    # Legacy In-Document Detection
    # -------------------------------------------------------------------------

    @staticmethod
    def assess_significance(frequency: int) -> str:
        if frequency >= 10:
            return Severity.CRITICAL.value
        if frequency >= 7:
            return Severity.HIGH.value
        if frequency >= 5:
            return Severity.MEDIUM.value
        return Severity.LOW.value

    def detect_patterns(self, findings: Iterable[Any]) -> List[DocumentPattern]:
        """Patterns inside a single document's findings."""
        defects = [d for d in (normalize_defect(f) for f in findings or ()) if d is not None]

        by_type: Dict[str, List[Defect]] = defaultdict(list)
        for defect in defects:
            by_type[defect.defect_type or DEFECT_TYPE_UNKNOWN].append(defect)

        patterns = []
        for defect_type, group in by_type.items():
            if len(group) >= DOCUMENT_RECURRENCE_THRESHOLD:
                patterns.append(DocumentPattern(
                    pattern_type=PATTERN_RECURRING_ISSUE,
                    category=defect_type,
                    frequency=len(group),
                    description=f'"{defect_type}" appears {len(group)} times in document',
                    significance=self.assess_significance(len(group)),
                    examples=tuple(group[:DOCUMENT_EXAMPLE_LIMIT]),
                ))

        patterns.extend(self.detect_temporal_patterns(defects))
        patterns.extend(self.detect_severity_patterns(defects))
        return patterns

    def detect_temporal_patterns(self, defects: List[Defect]) -> List[DocumentPattern]:
        temporal = [d for d in defects if "temporal" in d.defect_type.lower()]
        if len(temporal) <= TEMPORAL_DENSITY_THRESHOLD:
            return []
        return [DocumentPattern(
            pattern_type=PATTERN_TEMPORAL,
            category="High Temporal Reference Density",
            frequency=len(temporal),
            description="Document contains many temporal references - timeline analysis recommended",
            significance=Severity.MEDIUM.value,
        )]

    def detect_severity_patterns(self, defects: List[Defect]) -> List[DocumentPattern]:
        critical = sum(1 for d in defects if d.severity == Severity.CRITICAL.value)
        if critical <= CRITICAL_CLUSTER_THRESHOLD:
            return []
        return [DocumentPattern(
            pattern_type=PATTERN_SEVERITY,
            category="Multiple Critical Issues",
            frequency=critical,
            description=f"Document has {critical} CRITICAL issues - urgent review required",
            significance=Severity.CRITICAL.value,
        )]

    def learn(self, analysis: Any, observed_at: Optional[str] = None) -> List[DocumentPattern]:
        """
        Fold one document's patterns into the learned pattern map.

        Returns the patterns detected in this document.
        """
        findings = extract_findings(analysis)
        if not findings:
            return []

        observed_at = observed_at or datetime.now(timezone.utc).isoformat()
        patterns = self.detect_patterns(findings)
        for pattern in patterns:
            key = f"{pattern.pattern_type}:{pattern.category}"
            learned = self._state.patterns.get(key)
            if learned is None:
                self._state.patterns[key] = LearnedPattern(
                    pattern_type=pattern.pattern_type,
                    category=pattern.category,
                    description=pattern.description,
                    significance=pattern.significance,
                    count=1,
                    total_frequency=pattern.frequency,
                    first_seen=observed_at,
                )
            else:
                learned.count += 1
                learned.total_frequency += pattern.frequency
        return patterns

    def replay_analyses(self, history: Iterable[Any]) -> int:
        """Clear the learned pattern map and rebuild it from stored analyses."""
        self._state.patterns.clear()
        records = _as_records(history)
        for record in records:
            self.learn(record, observed_at=record.timestamp or None)
        return len(records)

    def get_learned_patterns(self) -> List[LearnedPattern]:
        """Learned patterns, seen in the most documents first."""
        learned = list(self._state.patterns.values())
        learned.sort(key=lambda p: p.count, reverse=True)
        return learned

    # -------------------------------------------------------------------------
    # Reset
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """Drop all derived state: success rates and learned patterns."""
        self._state.clear()
        logger.info("Pattern engine state cleared")


# -----------------------------------------------------------------------------
# Module-Level Functions
# -----------------------------------------------------------------------------

# Singleton instance
_engine: Optional[PatternEngine] = None


def get_pattern_engine() -> PatternEngine:
    """Get the pattern engine singleton."""
    global _engine
    if _engine is None:
        _engine = PatternEngine()
    return _engine
