"""
Analysis Intelligence - Analysis Store

Append-only JSONL persistence for analyses, court outcomes and detected
document patterns.

CONSTRAINTS:
- APPEND-ONLY: Records are never modified; only clear_all() removes them
- MONOTONIC IDS: Each log assigns max(existing id) + 1
- CHRONOLOGICAL: Records read back in the order they were written
- FSYNC: All writes are fsync'd for durability
- SERIALIZED WRITES: One asyncio.Lock guards every mutation
- FAIL LOUD ON I/O: OSError surfaces as StorageError, never retried
"""

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, List, Mapping

from .analysis_model import AnalysisRecord, OutcomeRecord, DocumentPattern
from .finding_extractor import normalize_record, summarize_defects

logger = logging.getLogger("analysis_store")


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
STORE_VERSION = "1.0.0"

# Storage paths
STORAGE_DIR = Path(os.getenv("INTELLIGENCE_STORAGE_DIR", "data/intelligence"))
ANALYSES_FILE = STORAGE_DIR / "analyses.jsonl"
OUTCOMES_FILE = STORAGE_DIR / "outcomes.jsonl"
PATTERNS_FILE = STORAGE_DIR / "patterns.jsonl"


class StorageError(Exception):
    """The backing store could not be read or written."""
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# -----------------------------------------------------------------------------
# Analysis Store (Append-Only Persistence)
# -----------------------------------------------------------------------------
class AnalysisStore:
    """
    Persistent record store behind the intelligence layer.

    The store owns the records; the pattern engine only ever sees copies
    loaded from here.
    """

    def __init__(
        self,
        analyses_file: Optional[Path] = None,
        outcomes_file: Optional[Path] = None,
        patterns_file: Optional[Path] = None,
    ):
        """
        Initialize store.

        Args:
            analyses_file: Path to analyses log (optional, for testing)
            outcomes_file: Path to outcomes log (optional, for testing)
            patterns_file: Path to patterns log (optional, for testing)
        """
        self._analyses_file = analyses_file or ANALYSES_FILE
        self._outcomes_file = outcomes_file or OUTCOMES_FILE
        self._patterns_file = patterns_file or PATTERNS_FILE
        self._lock = asyncio.Lock()
        self._version = STORE_VERSION

    # -------------------------------------------------------------------------
    # Analyses
    # -------------------------------------------------------------------------

    async def save_analysis(self, analysis: Mapping[str, Any]) -> int:
        """
        Persist one analysis result.

        The findings are flattened on the way in; the id and timestamp are
        assigned here.

        Returns:
            The new analysis id
        """
        async with self._lock:
            analysis_id = self._next_id(self._analyses_file)
            record = normalize_record(analysis, analysis_id=analysis_id, timestamp=_now())
            data = record.to_dict()
            data["summary"] = summarize_defects(list(record.findings))
            self._append_record(self._analyses_file, data)

        logger.info(f"Saved analysis {analysis_id} ({len(record.findings)} findings)")
        return analysis_id

    async def get_all_analyses(self) -> List[AnalysisRecord]:
        """All analyses, oldest first."""
        return [normalize_record(r) for r in self._read_records(self._analyses_file)]

    async def get_analysis(self, analysis_id: int) -> Optional[AnalysisRecord]:
        for data in self._read_records(self._analyses_file):
            if data.get("id") == analysis_id:
                return normalize_record(data)
        return None

    # -------------------------------------------------------------------------
    # Outcomes
    # -------------------------------------------------------------------------

    async def save_outcome(self, analysis_id: int, outcome: OutcomeRecord) -> OutcomeRecord:
        """
        Append a court outcome for an analysis.

        Returns:
            The outcome as stored, with its id and timestamp
        """
        async with self._lock:
            outcome_id = self._next_id(self._outcomes_file)
            data = outcome.to_dict()
            data["id"] = outcome_id
            data["analysis_id"] = analysis_id
            data["timestamp"] = _now()
            self._append_record(self._outcomes_file, data)

        logger.info(f"Saved outcome {outcome_id} for analysis {analysis_id}: {outcome.outcome}")
        return OutcomeRecord.from_dict(data)

    async def get_all_outcomes(self) -> List[OutcomeRecord]:
        """All outcomes, in the order they were recorded."""
        return self._load_outcomes()

    async def get_outcomes_by_analysis_id(self, analysis_id: int) -> List[OutcomeRecord]:
        return [o for o in self._load_outcomes() if o.analysis_id == analysis_id]

    def _load_outcomes(self) -> List[OutcomeRecord]:
        outcomes = []
        for data in self._read_records(self._outcomes_file):
            try:
                outcomes.append(OutcomeRecord.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed outcome record: {e}")
        return outcomes

    # -------------------------------------------------------------------------
    # Patterns
    # -------------------------------------------------------------------------

    async def save_pattern(self, pattern: DocumentPattern, analysis_id: Optional[int] = None) -> None:
        """Append a document pattern to the pattern log."""
        data = pattern.to_dict()
        data["analysis_id"] = analysis_id
        data["observed_at"] = _now()
        async with self._lock:
            self._append_record(self._patterns_file, data)

    async def get_all_patterns(self) -> List[Dict[str, Any]]:
        return self._read_records(self._patterns_file)

    async def get_patterns_by_type(self, pattern_type: str) -> List[Dict[str, Any]]:
        return [p for p in self._read_records(self._patterns_file) if p.get("type") == pattern_type]

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def clear_all(self) -> None:
        """
        Remove every analysis, outcome and pattern.

        Callers must also reset the pattern engine.
        """
        async with self._lock:
            for file_path in (self._analyses_file, self._outcomes_file, self._patterns_file):
                try:
                    file_path.unlink(missing_ok=True)
                except OSError as e:
                    logger.error(f"Failed to clear {file_path}: {e}")
                    raise StorageError(f"Failed to clear {file_path.name}: {e}") from e
        logger.info("Cleared all stored analyses, outcomes and patterns")

    async def get_statistics(self) -> Dict[str, Any]:
        return {
            "version": self._version,
            "analyses": len(self._read_records(self._analyses_file)),
            "outcomes": len(self._read_records(self._outcomes_file)),
            "patterns": len(self._read_records(self._patterns_file)),
        }

    # -------------------------------------------------------------------------
    # Internal Helpers
    # -------------------------------------------------------------------------

    def _next_id(self, file_path: Path) -> int:
        ids = [r["id"] for r in self._read_records(file_path) if isinstance(r.get("id"), int)]
        return max(ids, default=0) + 1

    def _append_record(self, file_path: Path, record: Dict[str, Any]) -> None:
        """
        Append a record to a JSONL file with fsync.

        APPEND-ONLY: Only appends, never modifies.
        """
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'a') as f:
                f.write(json.dumps(record) + '\n')
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            logger.error(f"Failed to write {file_path}: {e}")
            raise StorageError(f"Failed to write {file_path.name}: {e}") from e

    def _read_records(self, file_path: Path) -> List[Dict[str, Any]]:
        """
        Read all records from a JSONL file.

        Malformed lines are skipped.
        """
        if not file_path.exists():
            return []

        records = []
        try:
            with open(file_path, 'r') as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        record = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"Skipping malformed line {line_no} in {file_path.name}")
                        continue
                    if isinstance(record, dict):
                        records.append(record)
        except OSError as e:
            logger.error(f"Failed to read {file_path}: {e}")
            raise StorageError(f"Failed to read {file_path.name}: {e}") from e

        return records


# -----------------------------------------------------------------------------
# Module-Level Functions
# -----------------------------------------------------------------------------

# Singleton instance
_store: Optional[AnalysisStore] = None


def get_analysis_store(
    analyses_file: Optional[Path] = None,
    outcomes_file: Optional[Path] = None,
    patterns_file: Optional[Path] = None,
) -> AnalysisStore:
    """Get the analysis store singleton."""
    global _store
    if _store is None:
        _store = AnalysisStore(
            analyses_file=analyses_file,
            outcomes_file=outcomes_file,
            patterns_file=patterns_file,
        )
    return _store
