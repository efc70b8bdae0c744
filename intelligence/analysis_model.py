"""
Analysis Intelligence - Data Models

Enums and dataclasses shared by the finding extractor, the pattern engine,
the outcome ledger and the store.

CONSTRAINTS:
- PERSISTED RECORDS ARE FROZEN: AnalysisRecord and OutcomeRecord never change
  after the store assigns their id
- DERIVED STATE IS REBUILDABLE: DefectSuccessStats and LearnedPattern live in
  EngineState and can always be rebuilt from the ledger
- 100% DETERMINISTIC: Same history = same insights
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple


# -----------------------------------------------------------------------------
# Sentinels
# -----------------------------------------------------------------------------
STATUTE_UNKNOWN = "unknown"  # Grouping key for a missing statute
STATUTE_UNKNOWN_DISPLAY = "Unknown"  # How a missing statute is shown
DEFECT_TYPE_UNKNOWN = "Unknown"
UNKNOWN_DOCUMENT = "Unknown Document"


# -----------------------------------------------------------------------------
# Severity Enum (LOCKED - EXACTLY 4 VALUES)
# -----------------------------------------------------------------------------
class Severity(str, Enum):
    """
    Defect severity.

    Ingestion is case-insensitive; anything unrecognized is LOW.
    """
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @classmethod
    def normalize(cls, value: Any) -> str:
        if isinstance(value, str):
            upper = value.strip().upper()
            if upper in cls._value2member_map_:
                return upper
        return cls.LOW.value


HIGH_SEVERITIES = frozenset({Severity.HIGH.value, Severity.CRITICAL.value})


# -----------------------------------------------------------------------------
# Outcome Type Enum (LOCKED - EXACTLY 9 VALUES)
# -----------------------------------------------------------------------------
class OutcomeType(str, Enum):
    """
    Court outcome vocabulary.

    Only three values count as a success for statistics. All nine are valid
    inputs.
    """
    EVIDENCE_EXCLUDED = "evidence excluded"
    APPLICATION_SUCCESSFUL = "application successful"
    CASE_DISMISSED = "case dismissed"
    EVIDENCE_ADMITTED = "evidence admitted"
    APPLICATION_DENIED = "application denied"
    CASE_PROCEEDED = "case proceeded"
    SETTLED = "settled"
    WITHDRAWN = "withdrawn"
    OTHER = "other"


SUCCESSFUL_OUTCOMES = frozenset({
    OutcomeType.EVIDENCE_EXCLUDED.value,
    OutcomeType.APPLICATION_SUCCESSFUL.value,
    OutcomeType.CASE_DISMISSED.value,
})


def is_successful_outcome(outcome: str) -> bool:
    """True when the outcome counts as a win for the defects raised."""
    return outcome in SUCCESSFUL_OUTCOMES


# -----------------------------------------------------------------------------
# Trend Direction Enum (LOCKED - EXACTLY 3 VALUES)
# -----------------------------------------------------------------------------
class TrendDirection(str, Enum):
    WORSENING = "WORSENING"
    IMPROVING = "IMPROVING"
    STABLE = "STABLE"


TREND_STATUS_OK = "ok"
TREND_STATUS_INSUFFICIENT = "insufficient_data"


# -----------------------------------------------------------------------------
# Defect (Frozen - Immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Defect:
    """
    A single finding inside an analysis.

    `defect_type` is the matching key: exact string equality, no fuzzing.
    """
    defect_type: str
    severity: str  # Severity value
    statute: str  # STATUTE_UNKNOWN when absent
    description: str

    def __post_init__(self):
        if self.severity not in Severity._value2member_map_:
            raise ValueError(f"Invalid severity: {self.severity}")

    @property
    def has_statute(self) -> bool:
        return self.statute != STATUTE_UNKNOWN

    @property
    def display_statute(self) -> str:
        return self.statute if self.has_statute else STATUTE_UNKNOWN_DISPLAY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.defect_type,
            "severity": self.severity,
            "statute": self.statute,
            "description": self.description,
        }


# -----------------------------------------------------------------------------
# Analysis Record (Frozen - Immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class AnalysisRecord:
    """
    One completed document analysis as read back from the store.

    FROZEN: the engine only reads history, it never rewrites it.
    `findings` is already flattened by the finding extractor.
    """
    analysis_id: int
    timestamp: str  # ISO format
    findings: Tuple[Defect, ...]
    file_name: str = UNKNOWN_DOCUMENT

    def __post_init__(self):
        if not isinstance(self.findings, tuple):
            raise ValueError("findings must be a tuple for immutability")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.analysis_id,
            "timestamp": self.timestamp,
            "file_name": self.file_name,
            "findings": [f.to_dict() for f in self.findings],
        }


# -----------------------------------------------------------------------------
# Outcome Record (Frozen - Immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class OutcomeRecord:
    """
    What happened in court for one analysis.

    One analysis may collect several outcomes over time (hearing, appeal).
    `court_response` and `effective_arguments` are audit text only.
    """
    outcome_id: Optional[int]
    analysis_id: int
    outcome: str  # OutcomeType value
    defects_raised: Tuple[str, ...]
    court_response: str
    effective_arguments: Tuple[str, ...]
    date: str  # Real-world date of the outcome
    timestamp: Optional[str] = None  # When it was recorded

    def __post_init__(self):
        if not isinstance(self.defects_raised, tuple):
            raise ValueError("defects_raised must be a tuple for immutability")
        if not isinstance(self.effective_arguments, tuple):
            raise ValueError("effective_arguments must be a tuple for immutability")

    @property
    def is_successful(self) -> bool:
        return is_successful_outcome(self.outcome)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.outcome_id,
            "analysis_id": self.analysis_id,
            "outcome": self.outcome,
            "defects_raised": list(self.defects_raised),
            "court_response": self.court_response,
            "effective_arguments": list(self.effective_arguments),
            "date": self.date,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OutcomeRecord":
        return cls(
            outcome_id=data.get("id"),
            analysis_id=data["analysis_id"],
            outcome=data["outcome"],
            defects_raised=tuple(data.get("defects_raised") or ()),
            court_response=data.get("court_response") or "",
            effective_arguments=tuple(data.get("effective_arguments") or ()),
            date=data["date"],
            timestamp=data.get("timestamp"),
        )


# -----------------------------------------------------------------------------
# Derived Aggregates (Mutable - Rebuildable)
# -----------------------------------------------------------------------------
@dataclass
class DefectSuccessStats:
    """
    Court success bookkeeping for one defect type.

    Never persisted on its own; rebuilt by replaying the outcome ledger.
    """
    defect_type: str
    total_raised: int = 0
    successful: int = 0
    unsuccessful: int = 0
    outcomes: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total_raised == 0:
            return 0.0
        return round_half_up(self.successful / self.total_raised * 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.defect_type,
            "total_raised": self.total_raised,
            "successful": self.successful,
            "unsuccessful": self.unsuccessful,
            "success_rate": self.success_rate,
            "outcomes": [dict(o) for o in self.outcomes],
        }


@dataclass
class LearnedPattern:
    """A document-level pattern accumulated across learned analyses."""
    pattern_type: str
    category: str
    description: str
    significance: str
    count: int
    total_frequency: int
    first_seen: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.pattern_type,
            "category": self.category,
            "description": self.description,
            "significance": self.significance,
            "count": self.count,
            "total_frequency": self.total_frequency,
            "first_seen": self.first_seen,
        }


@dataclass
class EngineState:
    """
    All mutable state owned by one PatternEngine.

    Nothing here is a source of truth: success rates replay from the ledger
    and learned patterns replay from the analysis history.
    """
    success_rates: Dict[str, DefectSuccessStats] = field(default_factory=dict)
    patterns: Dict[str, LearnedPattern] = field(default_factory=dict)

    def clear(self) -> None:
        self.success_rates.clear()
        self.patterns.clear()


# -----------------------------------------------------------------------------
# Insight Outputs (Frozen - Immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class RecurringDefect:
    """A (type, statute) group seen at least RECURRENCE_THRESHOLD times."""
    defect_type: str
    statute: str
    severity: str
    count: int
    first_seen: str
    last_seen: str
    descriptions: Tuple[str, ...]
    analysis_ids: Tuple[int, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.defect_type,
            "statute": self.statute,
            "severity": self.severity,
            "count": self.count,
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
            "descriptions": list(self.descriptions),
            "analysis_ids": list(self.analysis_ids),
        }


@dataclass(frozen=True)
class TrendAnalysis:
    """
    Trend verdict over the most recent analyses.

    When status is TREND_STATUS_INSUFFICIENT only `message` and
    `analysis_count` carry meaning.
    """
    status: str
    analysis_count: int
    message: str
    direction: Optional[str] = None  # TrendDirection value
    recommendation: Optional[str] = None
    severity: Optional[str] = None
    first_avg: Optional[float] = None
    second_avg: Optional[float] = None
    percent_change: Optional[int] = None

    @property
    def is_sufficient(self) -> bool:
        return self.status == TREND_STATUS_OK

    def to_dict(self) -> Dict[str, Any]:
        if not self.is_sufficient:
            return {
                "status": self.status,
                "message": self.message,
                "analysis_count": self.analysis_count,
            }
        return {
            "status": self.status,
            "direction": self.direction,
            "message": self.message,
            "recommendation": self.recommendation,
            "severity": self.severity,
            "first_avg": self.first_avg,
            "second_avg": self.second_avg,
            "percent_change": self.percent_change,
            "analysis_count": self.analysis_count,
        }


@dataclass(frozen=True)
class NovelIssue:
    """A defect in the latest analysis whose type was never seen before."""
    defect_type: str
    severity: str
    description: str
    statute: str
    message: str
    is_new: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.defect_type,
            "severity": self.severity,
            "description": self.description,
            "statute": self.statute,
            "is_new": self.is_new,
            "message": self.message,
        }


@dataclass(frozen=True)
class ComplianceMetrics:
    total_analyses: int
    total_issues: int
    average_issues_per_doc: float
    compliance_rate: float
    critical_issues: int
    high_issues: int
    most_common_issue: str
    most_common_issue_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_analyses": self.total_analyses,
            "total_issues": self.total_issues,
            "average_issues_per_doc": self.average_issues_per_doc,
            "compliance_rate": self.compliance_rate,
            "critical_issues": self.critical_issues,
            "high_issues": self.high_issues,
            "most_common_issue": self.most_common_issue,
            "most_common_issue_count": self.most_common_issue_count,
        }


@dataclass(frozen=True)
class Recommendation:
    """
    Advisory text attached to a recurring defect.

    Priority 1 is the highest urgency. ADVISORY ONLY.
    """
    issue: str
    frequency: int
    severity: str
    priority: int
    recommendation: str
    statute: str
    rule_id: str

    def __post_init__(self):
        if self.priority < 1:
            raise ValueError(f"Priority must be >= 1, got {self.priority}")

    @property
    def headline(self) -> str:
        return self.recommendation.split("\n")[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue": self.issue,
            "frequency": self.frequency,
            "severity": self.severity,
            "priority": self.priority,
            "recommendation": self.recommendation,
            "statute": self.statute,
            "rule_id": self.rule_id,
        }


@dataclass(frozen=True)
class PrioritizedDefect:
    """A current defect annotated with its court track record, if any."""
    defect: Defect
    has_historical_data: bool
    recommendation: str
    success_rate: Optional[float] = None
    times_raised: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result = self.defect.to_dict()
        result["has_historical_data"] = self.has_historical_data
        result["recommendation"] = self.recommendation
        if self.has_historical_data:
            result["success_rate"] = self.success_rate
            result["times_raised"] = self.times_raised
        return result


@dataclass(frozen=True)
class DocumentPattern:
    """A pattern found inside a single document's findings."""
    pattern_type: str
    category: str
    frequency: int
    description: str
    significance: str
    examples: Tuple[Defect, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.pattern_type,
            "category": self.category,
            "frequency": self.frequency,
            "description": self.description,
            "significance": self.significance,
            "examples": [e.to_dict() for e in self.examples],
        }


@dataclass(frozen=True)
class Insights:
    """Everything the presenter needs after an analysis completes."""
    recurring: Tuple[RecurringDefect, ...]
    trends: TrendAnalysis
    recommendations: Tuple[Recommendation, ...]
    novel_issues: Tuple[NovelIssue, ...]
    compliance_metrics: ComplianceMetrics

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recurring": [r.to_dict() for r in self.recurring],
            "trends": self.trends.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "novel_issues": [n.to_dict() for n in self.novel_issues],
            "compliance_metrics": self.compliance_metrics.to_dict(),
        }


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def round_half_up(value: float, places: int = 1) -> float:
    """Round half away from zero (0.25 -> 0.3), as the displayed figures do."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
