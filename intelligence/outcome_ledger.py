"""
Analysis Intelligence - Outcome Ledger

Validation and construction of court outcome records before they reach
the store and the pattern engine.

CONSTRAINTS:
- APPEND-ONLY: Outcomes are recorded, never edited or deleted
- VALIDATED AT THE BOUNDARY: Invalid submissions never reach the engine
- AUDIT TEXT IS INFORMATIONAL: court_response and effective_arguments never
  affect statistics
"""

from datetime import date as date_type, datetime
from typing import Optional, List, Tuple, Iterable, Any, Union

from .analysis_model import OutcomeType, OutcomeRecord


VALID_OUTCOMES = frozenset(o.value for o in OutcomeType)


def _parse_date(value: str) -> Optional[datetime]:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def parse_effective_arguments(value: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    """
    Normalize effective arguments to a tuple of non-blank lines.

    Accepts free text (one argument per line) or a list of strings.
    """
    if value is None:
        return ()
    lines = value.split("\n") if isinstance(value, str) else list(value)
    return tuple(str(line).strip() for line in lines if str(line).strip())


def validate_outcome_submission(
    outcome: Optional[str],
    date: Optional[str],
    defects_raised: Optional[Iterable[Any]],
) -> Tuple[bool, str]:
    """
    Check an outcome submission before it is recorded.

    Returns:
        (True, "ok") or (False, reason)
    """
    if not outcome:
        return False, "Please select an outcome type"
    if outcome not in VALID_OUTCOMES:
        return False, f"Unknown outcome type: {outcome}"
    if not date or not str(date).strip():
        return False, "Please enter the date of the outcome"
    if _parse_date(str(date)) is None:
        return False, f"Invalid outcome date: {date}"

    raised = [d for d in (defects_raised or ()) if isinstance(d, str) and d.strip()]
    if not raised:
        return False, "Please select at least one defect that was raised in court"
    return True, "ok"


def build_outcome_record(
    analysis_id: int,
    outcome: str,
    defects_raised: Iterable[str],
    date: Union[str, date_type],
    court_response: Optional[str] = None,
    effective_arguments: Union[str, Iterable[str], None] = None,
) -> OutcomeRecord:
    """
    Build an unsaved OutcomeRecord from a validated submission.

    Each defect type is kept once, in the order it was selected, exactly as
    submitted: it must equal the analysis defect's type to be matched. The
    store assigns `outcome_id` and `timestamp`.
    """
    if isinstance(date, date_type):
        date = date.isoformat()

    raised: List[str] = []
    for defect_type in defects_raised:
        if defect_type.strip() and defect_type not in raised:
            raised.append(defect_type)

    return OutcomeRecord(
        outcome_id=None,
        analysis_id=analysis_id,
        outcome=outcome,
        defects_raised=tuple(raised),
        court_response=court_response or "",
        effective_arguments=parse_effective_arguments(effective_arguments),
        date=date.strip(),
    )
