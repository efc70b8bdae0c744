"""
Analysis Intelligence Module

Learning layer for a Victorian criminal-procedure compliance analyzer.
Mines the accumulated analysis history for recurring defects, trends and
court outcome correlations.

Components:
- Finding Extractor: normalizes heterogeneous analysis shapes into a flat
  list of defects (fails soft, never raises on data shape)
- Pattern Engine: recurring defects, trend verdicts, novel issues,
  compliance metrics, rule-table recommendations, court success rates
- Outcome Ledger: validated, append-only court outcome records
- Analysis Store: JSONL persistence with fsync, async, serialized writes
- Insight Presenter: plain-text panels and YAML report export
- API endpoints: /analyses, /insights, /success-rates, /defects/prioritize,
  /patterns, /report, /data

CONSTRAINTS:
- NO ML INFERENCE: Deterministic aggregation and a fixed rule table
- 100% DETERMINISTIC: Same history = same insights
- ADVISORY ONLY: Recommendations suggest, never act
"""

__version__ = "1.0.0"

SERVICE_NAME = "Analysis Intelligence Engine"
