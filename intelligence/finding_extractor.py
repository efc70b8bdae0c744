"""
Analysis Intelligence - Finding Extractor

Flattens the findings of an analysis result into one ordered list of Defect.

An analysis result may carry findings directly (`findings`) and/or grouped
by preset under `phases.presetAnalysis[*].findings`. Both are merged in
encounter order, direct findings first. Nothing is deduplicated: the same
defect reported by two presets counts twice toward frequency.

FAIL SOFT: a missing or malformed shape yields an empty list, a malformed
entry is skipped, and missing fields fall back to defaults. Nothing in this
module raises on data shape.
"""

import logging
from typing import Optional, Dict, Any, List, Mapping

from .analysis_model import (
    Severity,
    Defect,
    AnalysisRecord,
    STATUTE_UNKNOWN,
    DEFECT_TYPE_UNKNOWN,
    UNKNOWN_DOCUMENT,
)

logger = logging.getLogger("finding_extractor")


# -----------------------------------------------------------------------------
# Defect Normalization
# -----------------------------------------------------------------------------
def normalize_defect(raw: Any) -> Optional[Defect]:
    """
    Convert one raw finding into a Defect.

    Returns None when the entry is not a mapping at all.
    """
    if isinstance(raw, Defect):
        return raw
    if not isinstance(raw, Mapping):
        return None

    defect_type = raw.get("type")
    if not isinstance(defect_type, str) or not defect_type:
        defect_type = DEFECT_TYPE_UNKNOWN

    statute = raw.get("statute")
    if not isinstance(statute, str) or not statute.strip() or statute.strip().lower() == STATUTE_UNKNOWN:
        statute = STATUTE_UNKNOWN

    description = raw.get("description")
    if not isinstance(description, str):
        description = "" if description is None else str(description)

    return Defect(
        defect_type=defect_type,
        severity=Severity.normalize(raw.get("severity")),
        statute=statute,
        description=description,
    )


def _normalize_list(raw_findings: Any) -> List[Defect]:
    if not isinstance(raw_findings, (list, tuple)):
        return []
    defects = []
    for raw in raw_findings:
        defect = normalize_defect(raw)
        if defect is None:
            logger.debug(f"Skipping malformed finding entry: {type(raw).__name__}")
            continue
        defects.append(defect)
    return defects


def _preset_findings(data: Mapping) -> List[Defect]:
    phases = data.get("phases")
    if not isinstance(phases, Mapping):
        return []
    presets = phases.get("presetAnalysis")
    if not isinstance(presets, (list, tuple)):
        return []

    defects = []
    for preset in presets:
        if isinstance(preset, Mapping):
            defects.extend(_normalize_list(preset.get("findings")))
    return defects


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def extract_findings(data: Any) -> List[Defect]:
    """
    Flatten every finding in an analysis result.

    Accepts an AnalysisRecord (already flat) or a raw mapping of any shape.
    """
    if isinstance(data, AnalysisRecord):
        return list(data.findings)
    if not isinstance(data, Mapping):
        return []
    return _normalize_list(data.get("findings")) + _preset_findings(data)


def extract_defects_for_outcome(data: Any) -> List[Defect]:
    """
    Defects to offer when recording a court outcome for this analysis.

    Preset findings come first, every one of them; direct findings follow
    only when their type is not listed yet.
    """
    if isinstance(data, AnalysisRecord):
        data = data.to_dict()
    if not isinstance(data, Mapping):
        return []

    defects = _preset_findings(data)
    seen_types = {d.defect_type for d in defects}
    for defect in _normalize_list(data.get("findings")):
        if defect.defect_type not in seen_types:
            defects.append(defect)
            seen_types.add(defect.defect_type)
    return defects


def normalize_record(data: Mapping, analysis_id: Optional[int] = None, timestamp: Optional[str] = None) -> AnalysisRecord:
    """
    Build the canonical AnalysisRecord for a stored analysis payload.

    `analysis_id` and `timestamp` override whatever the payload carries.
    """
    if not isinstance(data, Mapping):
        data = {}

    record_id = analysis_id if analysis_id is not None else data.get("id")
    file_name = data.get("fileName") or data.get("file_name") or UNKNOWN_DOCUMENT

    return AnalysisRecord(
        analysis_id=record_id if isinstance(record_id, int) else 0,
        timestamp=timestamp or str(data.get("timestamp") or ""),
        findings=tuple(extract_findings(data)),
        file_name=str(file_name),
    )


def summarize_defects(defects: List[Defect]) -> Dict[str, int]:
    """Count defects by severity, the shape analysis summaries use."""
    summary = {
        "totalFindings": len(defects),
        "criticalIssues": 0,
        "highIssues": 0,
        "mediumIssues": 0,
        "lowIssues": 0,
    }
    keys = {
        Severity.CRITICAL.value: "criticalIssues",
        Severity.HIGH.value: "highIssues",
        Severity.MEDIUM.value: "mediumIssues",
        Severity.LOW.value: "lowIssues",
    }
    for defect in defects:
        summary[keys[defect.severity]] += 1
    return summary
