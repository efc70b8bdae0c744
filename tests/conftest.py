"""
Pytest configuration for Analysis Intelligence tests.

This module provides:
1. Async test support without pytest-asyncio
2. Store, engine and manager fixtures on temporary files
3. Record builders and sample defects
"""

import asyncio
import functools
import pytest
from pathlib import Path
from typing import List, Dict, Any

from intelligence.analysis_model import AnalysisRecord, OutcomeRecord
from intelligence.analysis_store import AnalysisStore
from intelligence.finding_extractor import normalize_defect
from intelligence.intelligence_manager import IntelligenceManager
from intelligence.pattern_engine import PatternEngine


# -----------------------------------------------------------------------------
# Async Test Support
# -----------------------------------------------------------------------------
def async_test(func):
    """
    Decorator to run async tests without pytest-asyncio.

    Usage:
        @async_test
        async def test_something(self):
            result = await some_async_function()
            assert result is not None
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return asyncio.run(func(*args, **kwargs))
    return wrapper


# -----------------------------------------------------------------------------
# Sample Defects
# -----------------------------------------------------------------------------
S55D_TYPE = "Missing s.55D directions language"
S49_TYPE = "Insufficient s.49 reason to believe"
S464_TYPE = "Defective s.464 caution"

S55D = {
    "type": S55D_TYPE,
    "severity": "HIGH",
    "description": "Document fails to show oral directions were provided",
    "statute": "Road Safety Act 1986 s.55D",
}
S49 = {
    "type": S49_TYPE,
    "severity": "HIGH",
    "description": "Officer belief not adequately documented",
    "statute": "Road Safety Act 1986 s.49",
}
S464 = {
    "type": S464_TYPE,
    "severity": "CRITICAL",
    "description": "Caution not recorded verbatim",
    "statute": "Crimes Act 1958 s.464",
}


def defect(defect_type: str, severity: str = "LOW", statute: str = None, description: str = ""):
    """Build a normalized Defect."""
    raw = {"type": defect_type, "severity": severity, "description": description}
    if statute is not None:
        raw["statute"] = statute
    return normalize_defect(raw)


def make_record(analysis_id: int, findings: List[Dict[str, Any]], timestamp: str = None) -> AnalysisRecord:
    """Build a stored-looking AnalysisRecord from raw finding dicts."""
    return AnalysisRecord(
        analysis_id=analysis_id,
        timestamp=timestamp or f"2024-01-{analysis_id:02d}T10:00:00+00:00",
        findings=tuple(normalize_defect(f) for f in findings),
        file_name=f"brief-{analysis_id:02d}.pdf",
    )


def history_with_high_counts(counts: List[int]) -> List[AnalysisRecord]:
    """One record per count, each with that many HIGH findings."""
    return [
        make_record(i + 1, [{"type": f"Issue {j}", "severity": "HIGH"} for j in range(count)])
        for i, count in enumerate(counts)
    ]


def make_outcome(outcome: str, defects_raised, analysis_id: int = 1, outcome_id: int = None) -> OutcomeRecord:
    return OutcomeRecord(
        outcome_id=outcome_id,
        analysis_id=analysis_id,
        outcome=outcome,
        defects_raised=tuple(defects_raised),
        court_response="",
        effective_arguments=(),
        date="2024-03-01",
    )


# -----------------------------------------------------------------------------
# Common Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def temp_dir(tmp_path) -> Path:
    """Directory for store files."""
    return tmp_path


@pytest.fixture
def store(temp_dir) -> AnalysisStore:
    """Create an analysis store with temp files."""
    return AnalysisStore(
        analyses_file=temp_dir / "analyses.jsonl",
        outcomes_file=temp_dir / "outcomes.jsonl",
        patterns_file=temp_dir / "patterns.jsonl",
    )


@pytest.fixture
def engine() -> PatternEngine:
    """Fresh engine with its own state."""
    return PatternEngine()


@pytest.fixture
def manager(store) -> IntelligenceManager:
    """Uninitialized manager over the temp store."""
    return IntelligenceManager(store=store, engine=PatternEngine())


@pytest.fixture
def s55d_history() -> List[AnalysisRecord]:
    """Three analyses each carrying the s.55D directions defect."""
    return [make_record(i, [S55D]) for i in (1, 2, 3)]


# -----------------------------------------------------------------------------
# Session Configuration
# -----------------------------------------------------------------------------
def pytest_configure(config):
    """Configure pytest session."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async (custom implementation)"
    )
