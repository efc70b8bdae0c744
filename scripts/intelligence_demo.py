#!/usr/bin/env python3
"""
Intelligence System Walkthrough

Runs the intelligence layer end to end against a throwaway store:
1. Processes a handful of analyses with recurring s.55D / s.49 defects
2. Prints the insights panel for the latest analysis
3. Records court outcomes and prints success rates
4. Prioritizes the latest analysis's defects
5. Prints the intelligence report and exports it as YAML

Nothing outside the temporary directory is touched.
"""

import asyncio
import shutil
import sys
import tempfile
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from intelligence.analysis_store import AnalysisStore
from intelligence.insight_presenter import export_report, render_insights, render_success_rates
from intelligence.intelligence_manager import IntelligenceManager


S55D = {
    "type": "Missing s.55D directions language",
    "severity": "HIGH",
    "description": "Document fails to show oral directions were provided",
    "statute": "Road Safety Act 1986 s.55D",
}
S49 = {
    "type": "Insufficient s.49 reason to believe",
    "severity": "HIGH",
    "description": "Officer belief not adequately documented",
    "statute": "Road Safety Act 1986 s.49",
}
S464 = {
    "type": "Defective s.464 caution",
    "severity": "critical",
    "description": "Caution not recorded verbatim before interview",
    "statute": "Crimes Act 1958 s.464",
}
TEMPORAL = {
    "type": "Temporal reference",
    "severity": "LOW",
    "description": "Unanchored time reference",
}


def sample_analyses():
    """Five briefs, oldest first."""
    return [
        {"fileName": "brief-01.pdf", "findings": [S55D]},
        {"fileName": "brief-02.pdf", "phases": {"presetAnalysis": [{"presetId": 1, "findings": [S55D, S49]}]}},
        {"fileName": "brief-03.pdf", "findings": [S49], "phases": {"presetAnalysis": [{"presetId": 2, "findings": [S55D]}]}},
        {"fileName": "brief-04.pdf", "findings": [S49, S55D, S464]},
        {"fileName": "brief-05.pdf", "findings": [S464, S55D, S49] + [TEMPORAL] * 6},
    ]


async def main():
    temp_dir = Path(tempfile.mkdtemp(prefix="intelligence-demo-"))
    store = AnalysisStore(
        analyses_file=temp_dir / "analyses.jsonl",
        outcomes_file=temp_dir / "outcomes.jsonl",
        patterns_file=temp_dir / "patterns.jsonl",
    )
    manager = IntelligenceManager(store=store)

    print("=" * 70)
    print("🧠 ANALYSIS INTELLIGENCE - WALKTHROUGH")
    print(f"   Store: {temp_dir}")
    print("=" * 70)

    try:
        await manager.initialize()

        result = None
        analyses = sample_analyses()
        for analysis in analyses:
            result = await manager.process_analysis(analysis)
            print(f"✅ Analysis saved with ID: {result.analysis_id} ({result.total_analyses} in history)")

        print()
        print(render_insights(result.insights, analyses[-1]))

        print()
        print("📋 Recording court outcomes...")
        raised = [S55D["type"], S49["type"]]
        for outcome in ("evidence excluded", "evidence excluded", "application denied"):
            await manager.record_outcome(
                analysis_id=result.analysis_id,
                outcome=outcome,
                defects_raised=raised,
                date="2024-03-01",
                court_response="Magistrate agreed the directions were inadequate",
                effective_arguments="Cited Walker v Melbourne\nEmphasized timing of directions",
            )
        print(render_success_rates(manager.get_success_rates()))

        print()
        print("⚖️ Prioritized defects for the latest analysis:")
        for entry in await manager.prioritize_analysis(result.analysis_id):
            rate = f"{entry.success_rate}%" if entry.has_historical_data else "n/a"
            print(f"  {entry.defect.defect_type} [{rate}] - {entry.recommendation}")

        report = await manager.generate_intelligence_report()
        path = export_report(report, reports_dir=temp_dir / "reports")
        print()
        print(f"📄 Report exported to: {path}")
        print(path.read_text())
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


if __name__ == "__main__":
    asyncio.run(main())
