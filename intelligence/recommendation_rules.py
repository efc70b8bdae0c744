"""
Analysis Intelligence - Recommendation Rules

Tagged rule table mapping recurring defect types to fixed advisory text.

A rule matches when EVERY one of its terms occurs in the defect type,
compared case-insensitively. Rules are checked in table order and every
matching rule contributes a recommendation.

CONSTRAINTS:
- RULE-BASED ONLY: No ML, no fuzzy matching
- DETERMINISTIC: Same recurring group always yields the same text
- ADVISORY-ONLY: Recommendations suggest, never act
"""

from dataclasses import dataclass
from typing import Tuple

from .analysis_model import Severity, RecurringDefect


# -----------------------------------------------------------------------------
# Priorities
# -----------------------------------------------------------------------------
PRIORITY_SPECIALIZED = 1  # Highest urgency
PRIORITY_GENERIC = 2

# Recurring groups below this count get no generic advice
GENERIC_MIN_FREQUENCY = 5


# -----------------------------------------------------------------------------
# Defect Recommendation Rule (Read-Only)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class DefectRecommendationRule:
    """
    A deterministic rule for a specialized recommendation.

    `template` is formatted with `count` (the group's frequency).
    """
    rule_id: str
    name: str
    terms: Tuple[str, ...]  # All must occur in the defect type
    severity: str  # Severity value
    statute: str
    template: str
    priority: int = PRIORITY_SPECIALIZED

    def __post_init__(self):
        if not self.terms:
            raise ValueError(f"Rule {self.rule_id} needs at least one term")
        if self.severity not in Severity._value2member_map_:
            raise ValueError(f"Invalid severity: {self.severity}")

    def matches(self, defect_type: str) -> bool:
        """Check whether every term occurs in the defect type."""
        if not defect_type:
            return False
        lowered = defect_type.lower()
        return all(term.lower() in lowered for term in self.terms)

    def render(self, group: RecurringDefect) -> str:
        return self.template.format(count=group.count)


# -----------------------------------------------------------------------------
# Specialized Rules (LOCKED, DETERMINISTIC)
# -----------------------------------------------------------------------------
DEFECT_RECOMMENDATION_RULES: Tuple[DefectRecommendationRule, ...] = (
    # Road Safety Act s.55D - directions to the subject
    DefectRecommendationRule(
        rule_id="rule-s55d-directions-checklist",
        name="s.55D Directions Checklist",
        terms=("55d", "directions"),
        severity=Severity.HIGH.value,
        statute="Road Safety Act 1986 s.55D",
        template=(
            "CREATE MANDATORY CHECKLIST: After {count} occurrences, implement checklist "
            "requiring explicit documentation of:\n"
            "1. Oral directions provided to subject (s.55D(2))\n"
            "2. Written directions provided if subject illiterate\n"
            "3. Officer confirms subject understood directions\n"
            "4. Time directions given recorded\n"
            "5. Subject's response to directions noted"
        ),
    ),
    # Road Safety Act s.49 - formation of belief
    DefectRecommendationRule(
        rule_id="rule-s49-reason-to-believe-training",
        name="s.49 Reason to Believe Training",
        terms=("49", "reason to believe"),
        severity=Severity.HIGH.value,
        statute="Road Safety Act 1986 s.49",
        template=(
            "TRAINING REQUIRED: Recurring failure to document subjective belief formation. "
            "Train officers to document:\n"
            "- Specific observations leading to belief\n"
            "- Which s.49(1)(a)-(h) indicator(s) observed\n"
            "- Time belief formed\n"
            "- Officer's exact words forming belief"
        ),
    ),
    # Crimes Act s.464 - caution before interview
    DefectRecommendationRule(
        rule_id="rule-s464-caution-process-failure",
        name="s.464 Caution Process Failure",
        terms=("464", "caution"),
        severity=Severity.CRITICAL.value,
        statute="Crimes Act 1958 s.464",
        template=(
            "CRITICAL PROCESS FAILURE: s.464 caution defects appearing {count} times. "
            "Implement:\n"
            "- Pre-printed caution cards for officers\n"
            "- Mandatory verbatim recording of caution\n"
            "- Supervisor review before interview commencement\n"
            "- Body-worn camera verification of caution delivery"
        ),
    ),
)

GENERIC_RULE_ID = "rule-generic-high-frequency"

GENERIC_TEMPLATE = (
    'Pattern detected: "{defect_type}" has occurred {count} times. '
    "Review procedures related to {statute} to identify systemic causes."
)


def matching_rules(defect_type: str) -> Tuple[DefectRecommendationRule, ...]:
    """All specialized rules that fire for a defect type, in table order."""
    return tuple(r for r in DEFECT_RECOMMENDATION_RULES if r.matches(defect_type))
