"""
Analysis Intelligence - Intelligence Manager

Orchestrates the store, the pattern engine and the presenter around one
completed analysis or one recorded court outcome.

Flow for a new analysis:
1. Save the analysis (store assigns id and timestamp)
2. Reload the full history, oldest first
3. Learn the document's patterns and log them to the pattern store
4. Generate insights over the whole history
5. Log the key insights

CONSTRAINTS:
- INITIALIZE FIRST: Every operation except initialize() requires it
- STORE IS THE SOURCE OF TRUTH: Engine state is rebuilt from it on start
- CLEAR MEANS BOTH: Clearing the store always resets the engine
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple, Iterable, Mapping

from .analysis_model import (
    Defect,
    AnalysisRecord,
    OutcomeRecord,
    DefectSuccessStats,
    DocumentPattern,
    PrioritizedDefect,
    Insights,
    TrendAnalysis,
    RecurringDefect,
    Recommendation,
    NovelIssue,
)
from .analysis_store import AnalysisStore, StorageError, get_analysis_store
from .finding_extractor import extract_findings, extract_defects_for_outcome
from .insight_presenter import key_insight_lines
from .outcome_ledger import validate_outcome_submission, build_outcome_record
from .pattern_engine import PatternEngine

logger = logging.getLogger("intelligence_manager")


class UnknownAnalysisError(LookupError):
    """No stored analysis carries the requested id."""
    pass


# -----------------------------------------------------------------------------
# Results (Frozen - Immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ProcessedAnalysis:
    """What process_analysis() hands back to the caller."""
    analysis_id: int
    insights: Insights
    total_analyses: int
    document_patterns: Tuple[DocumentPattern, ...]
    outcome_checklist: Tuple[Defect, ...]  # Defects offered when recording an outcome

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis_id": self.analysis_id,
            "total_analyses": self.total_analyses,
            "insights": self.insights.to_dict(),
            "document_patterns": [p.to_dict() for p in self.document_patterns],
            "outcome_checklist": [d.to_dict() for d in self.outcome_checklist],
        }


@dataclass(frozen=True)
class IntelligenceReport:
    """
    Snapshot of everything the intelligence layer knows.

    `success_rates` holds plain dict snapshots; the live statistics keep
    changing as outcomes arrive.
    """
    generated_at: str
    total_analyses: int
    total_outcomes: int
    compliance_score: float
    avg_issues_per_doc: float
    trends: TrendAnalysis
    recurring_defects: Tuple[RecurringDefect, ...]
    recommendations: Tuple[Recommendation, ...]
    success_rates: Tuple[Dict[str, Any], ...]
    novel_issues: Tuple[NovelIssue, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at,
            "summary": {
                "total_analyses": self.total_analyses,
                "total_outcomes": self.total_outcomes,
                "compliance_score": self.compliance_score,
                "avg_issues_per_doc": self.avg_issues_per_doc,
            },
            "trends": self.trends.to_dict(),
            "recurring_defects": [r.to_dict() for r in self.recurring_defects],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "success_rates": [dict(s) for s in self.success_rates],
            "novel_issues": [n.to_dict() for n in self.novel_issues],
        }


# -----------------------------------------------------------------------------
# Intelligence Manager
# -----------------------------------------------------------------------------
class IntelligenceManager:
    """
    Single entry point for the intelligence layer.

    Owns one PatternEngine. The store is shared and injected.
    """

    def __init__(
        self,
        store: Optional[AnalysisStore] = None,
        engine: Optional[PatternEngine] = None,
    ):
        self._store = store or get_analysis_store()
        self._engine = engine or PatternEngine()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def engine(self) -> PatternEngine:
        return self._engine

    @property
    def store(self) -> AnalysisStore:
        return self._store

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Intelligence system not initialized. Call initialize() first.")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Rebuild engine state from the store.

        A storage failure while loading history is logged and the manager
        still comes up, with empty success rates.
        """
        logger.info("Initializing intelligence system...")
        try:
            analyses = await self._store.get_all_analyses()
            self._engine.replay_analyses(analyses)
            await self._load_success_rates()
        except StorageError as e:
            logger.warning(f"Initialized without history: {e}")
        self._initialized = True
        logger.info("Intelligence system initialized")

    async def _load_success_rates(self) -> List[DefectSuccessStats]:
        outcomes = await self._store.get_all_outcomes()
        self._engine.replay_outcomes(outcomes)
        rates = self._engine.get_success_rates()
        logger.info(f"Loaded success rates for {len(rates)} defect types")
        return rates

    async def rebuild_success_rates(self) -> List[DefectSuccessStats]:
        """Replay the whole outcome ledger into a cleared success map."""
        self._require_initialized()
        return await self._load_success_rates()

    # -------------------------------------------------------------------------
    # Analyses
    # -------------------------------------------------------------------------

    async def process_analysis(self, analysis: Mapping[str, Any]) -> ProcessedAnalysis:
        """Save a completed analysis and compute insights over the new history."""
        self._require_initialized()

        analysis_id = await self._store.save_analysis(analysis)
        history = await self._store.get_all_analyses()
        logger.info(f"Processing analysis {analysis_id} against {len(history)} stored analyses")

        current = next((r for r in history if r.analysis_id == analysis_id), None)
        document_patterns = self._engine.learn(
            current if current is not None else analysis,
            observed_at=current.timestamp if current is not None else None,
        )
        for pattern in document_patterns:
            await self._store.save_pattern(pattern, analysis_id=analysis_id)

        insights = self._engine.analyze_patterns(history)
        for line in key_insight_lines(insights):
            logger.info(line)

        return ProcessedAnalysis(
            analysis_id=analysis_id,
            insights=insights,
            total_analyses=len(history),
            document_patterns=tuple(document_patterns),
            outcome_checklist=tuple(extract_defects_for_outcome(analysis)),
        )

    async def get_all_analyses(self) -> List[AnalysisRecord]:
        self._require_initialized()
        return await self._store.get_all_analyses()

    async def get_insights(self) -> Insights:
        """Insights over the stored history, without saving anything."""
        self._require_initialized()
        history = await self._store.get_all_analyses()
        return self._engine.analyze_patterns(history)

    # -------------------------------------------------------------------------
    # Outcomes
    # -------------------------------------------------------------------------

    async def record_outcome(
        self,
        analysis_id: int,
        outcome: Optional[str],
        defects_raised: Optional[Iterable[str]],
        date: Optional[str],
        court_response: Optional[str] = None,
        effective_arguments: Any = None,
    ) -> OutcomeRecord:
        """
        Validate, persist and learn one court outcome.

        Raises:
            ValueError: The submission is invalid
            UnknownAnalysisError: No analysis with that id
            StorageError: The ledger could not be written
        """
        self._require_initialized()

        ok, reason = validate_outcome_submission(outcome, date, defects_raised)
        if not ok:
            raise ValueError(reason)

        if await self._store.get_analysis(analysis_id) is None:
            raise UnknownAnalysisError(f"Analysis {analysis_id} not found")

        record = build_outcome_record(
            analysis_id=analysis_id,
            outcome=outcome,
            defects_raised=defects_raised,
            date=date,
            court_response=court_response,
            effective_arguments=effective_arguments,
        )
        saved = await self._store.save_outcome(analysis_id, record)
        self._engine.learn_from_outcome(saved)
        logger.info(f"Outcome recorded for analysis {analysis_id}: {outcome} ({len(record.defects_raised)} defects)")
        return saved

    async def get_all_outcomes(self) -> List[OutcomeRecord]:
        self._require_initialized()
        return await self._store.get_all_outcomes()

    async def get_outcomes_for_analysis(self, analysis_id: int) -> List[OutcomeRecord]:
        self._require_initialized()
        return await self._store.get_outcomes_by_analysis_id(analysis_id)

    def get_success_rates(self) -> List[DefectSuccessStats]:
        self._require_initialized()
        return self._engine.get_success_rates()

    def prioritize_defects(self, defects: Iterable[Any]) -> List[PrioritizedDefect]:
        self._require_initialized()
        return self._engine.prioritize_defects(defects)

    async def prioritize_analysis(self, analysis_id: int) -> List[PrioritizedDefect]:
        """Prioritize the findings of a stored analysis."""
        self._require_initialized()
        record = await self._store.get_analysis(analysis_id)
        if record is None:
            raise UnknownAnalysisError(f"Analysis {analysis_id} not found")
        return self._engine.prioritize_defects(extract_findings(record))

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    async def generate_intelligence_report(self) -> IntelligenceReport:
        self._require_initialized()
        analyses = await self._store.get_all_analyses()
        outcomes = await self._store.get_all_outcomes()
        insights = self._engine.analyze_patterns(analyses)
        metrics = insights.compliance_metrics

        return IntelligenceReport(
            generated_at=datetime.now(timezone.utc).isoformat(),
            total_analyses=len(analyses),
            total_outcomes=len(outcomes),
            compliance_score=metrics.compliance_rate,
            avg_issues_per_doc=metrics.average_issues_per_doc,
            trends=insights.trends,
            recurring_defects=insights.recurring,
            recommendations=insights.recommendations,
            success_rates=tuple(s.to_dict() for s in self._engine.get_success_rates()),
            novel_issues=insights.novel_issues,
        )

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def clear_all_data(self, confirm: bool = False) -> bool:
        """
        Delete every analysis, outcome and pattern, and reset the engine.

        Does nothing unless `confirm` is True.
        """
        self._require_initialized()
        if not confirm:
            logger.warning("Refusing to clear intelligence data without confirmation")
            return False

        await self._store.clear_all()
        self._engine.reset()
        logger.info("All intelligence data cleared")
        return True


# -----------------------------------------------------------------------------
# Module-Level Functions
# -----------------------------------------------------------------------------

# Singleton instance
_manager: Optional[IntelligenceManager] = None


def get_intelligence_manager() -> IntelligenceManager:
    """Get the intelligence manager singleton."""
    global _manager
    if _manager is None:
        _manager = IntelligenceManager()
    return _manager
