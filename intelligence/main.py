"""
Analysis Intelligence - FastAPI Application

HTTP surface over the intelligence manager:
- Records completed analyses and returns insights over the full history
- Records court outcomes (validated) and exposes success rates
- Prioritizes defects by court track record
- Serves and exports intelligence reports

CONSTRAINTS:
- ADVISORY ONLY: Nothing here acts on a recommendation
- STORAGE FAILURES ARE 503: Surfaced with a message, never retried
- DESTRUCTIVE CLEAR NEEDS confirm=true
"""

import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Union

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from . import __version__, SERVICE_NAME
from .analysis_model import OutcomeType
from .analysis_store import StorageError
from .insight_presenter import export_report, render_insights
from .intelligence_manager import UnknownAnalysisError, get_intelligence_manager

# -----------------------------------------------------------------------------
# Logging Configuration
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("intelligence_api")


# -----------------------------------------------------------------------------
# Request Models
# -----------------------------------------------------------------------------
class FindingModel(BaseModel):
    """One finding as submitted by the analyzer."""
    type: Optional[str] = None
    severity: Optional[str] = None
    statute: Optional[str] = None
    description: Optional[str] = None


class AnalysisRequest(BaseModel):
    """
    Request model for recording a completed analysis.

    Findings may arrive directly, grouped per preset under
    `phases.presetAnalysis[*].findings`, or both.
    """
    fileName: Optional[str] = Field(None, description="Display name of the analyzed document")
    findings: List[Dict[str, Any]] = Field(default_factory=list)
    phases: Optional[Dict[str, Any]] = None
    summary: Optional[Dict[str, Any]] = None


class OutcomeRequest(BaseModel):
    """Request model for recording a court outcome."""
    outcome: Optional[str] = Field(None, description=f"One of: {', '.join(o.value for o in OutcomeType)}")
    defects_raised: List[str] = Field(default_factory=list)
    court_response: Optional[str] = None
    effective_arguments: Union[List[str], str, None] = Field(
        None, description="List of arguments, or free text with one argument per line"
    )
    date: Optional[str] = Field(None, description="Date of the outcome (ISO format)")


class PrioritizeRequest(BaseModel):
    """Request model for prioritizing defects by court success rate."""
    defects: List[FindingModel] = Field(default_factory=list)
    analysis_id: Optional[int] = None


# -----------------------------------------------------------------------------
# FastAPI Application
# -----------------------------------------------------------------------------
app = FastAPI(
    title=SERVICE_NAME,
    description="Recurring defects, trends and court outcome intelligence",
    version=__version__
)


async def _manager():
    """The initialized manager singleton."""
    manager = get_intelligence_manager()
    if not manager.initialized:
        await manager.initialize()
    return manager


def _storage_unavailable(action: str, e: StorageError) -> HTTPException:
    logger.error(f"Failed to {action}: {e}")
    return HTTPException(status_code=503, detail=f"Failed to {action}: {str(e)}")


# -----------------------------------------------------------------------------
# API Endpoints - Health
# -----------------------------------------------------------------------------
@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": SERVICE_NAME,
        "status": "running",
        "version": __version__
    }


@app.get("/health")
async def health_check():
    """Detailed health check."""
    manager = get_intelligence_manager()
    storage = "operational"
    try:
        statistics = await manager.store.get_statistics()
    except StorageError as e:
        logger.warning(f"Health check could not read storage: {e}")
        statistics = {}
        storage = "unavailable"

    return {
        "status": "healthy" if storage == "operational" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "api": "operational",
            "storage": storage,
            "engine": "initialized" if manager.initialized else "not_initialized",
        },
        "statistics": statistics,
        "version": __version__,
        "capabilities": [
            "analysis_recording",
            "recurring_defects",
            "trend_analysis",
            "novel_issue_detection",
            "recommendations",
            "compliance_metrics",
            "outcome_learning",
            "defect_prioritization",
            "report_export",
        ],
    }


# -----------------------------------------------------------------------------
# API Endpoints - Analyses
# -----------------------------------------------------------------------------
@app.post("/analyses")
async def create_analysis(request: AnalysisRequest):
    """
    Record a completed analysis and return insights over the full history.

    The response includes a plain-text rendering of the insights panel and
    the defect checklist to offer when recording a court outcome.
    """
    payload = request.model_dump(exclude_none=True)
    try:
        manager = await _manager()
        result = await manager.process_analysis(payload)
    except StorageError as e:
        raise _storage_unavailable("process analysis", e)

    response = result.to_dict()
    response["rendered"] = render_insights(result.insights, payload)
    return response


@app.get("/analyses")
async def list_analyses():
    try:
        manager = await _manager()
        analyses = await manager.get_all_analyses()
    except StorageError as e:
        raise _storage_unavailable("list analyses", e)

    return {
        "analyses": [a.to_dict() for a in analyses],
        "count": len(analyses),
    }


# -----------------------------------------------------------------------------
# API Endpoints - Outcomes
# -----------------------------------------------------------------------------
@app.post("/analyses/{analysis_id}/outcomes")
async def record_outcome(analysis_id: int, request: OutcomeRequest):
    """
    Record what happened in court for an analysis.

    Rejected with 400 when the outcome type is missing or unknown, the date
    is missing, or no defect was raised.
    """
    try:
        manager = await _manager()
        outcome = await manager.record_outcome(
            analysis_id=analysis_id,
            outcome=request.outcome,
            defects_raised=request.defects_raised,
            date=request.date,
            court_response=request.court_response,
            effective_arguments=request.effective_arguments,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnknownAnalysisError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise _storage_unavailable("record outcome", e)

    return {
        "outcome": outcome.to_dict(),
        "message": "Outcome recorded. Success rates updated.",
    }


@app.get("/analyses/{analysis_id}/outcomes")
async def list_analysis_outcomes(analysis_id: int):
    try:
        manager = await _manager()
        outcomes = await manager.get_outcomes_for_analysis(analysis_id)
    except StorageError as e:
        raise _storage_unavailable("list outcomes", e)

    return {
        "analysis_id": analysis_id,
        "outcomes": [o.to_dict() for o in outcomes],
        "count": len(outcomes),
    }


@app.get("/outcomes")
async def list_outcomes():
    try:
        manager = await _manager()
        outcomes = await manager.get_all_outcomes()
    except StorageError as e:
        raise _storage_unavailable("list outcomes", e)

    return {
        "outcomes": [o.to_dict() for o in outcomes],
        "count": len(outcomes),
    }


# -----------------------------------------------------------------------------
# API Endpoints - Insights
# -----------------------------------------------------------------------------
async def _insights():
    try:
        manager = await _manager()
        return await manager.get_insights()
    except StorageError as e:
        raise _storage_unavailable("compute insights", e)


@app.get("/insights")
async def insights_endpoint():
    """All insights over the stored history. READ-ONLY."""
    insights = await _insights()
    response = insights.to_dict()
    response["rendered"] = render_insights(insights)
    return response


@app.get("/insights/recurring")
async def recurring_endpoint():
    insights = await _insights()
    return {
        "recurring": [r.to_dict() for r in insights.recurring],
        "count": len(insights.recurring),
    }


@app.get("/insights/trends")
async def trends_endpoint():
    insights = await _insights()
    return {"trends": insights.trends.to_dict()}


@app.get("/insights/novel")
async def novel_endpoint():
    insights = await _insights()
    return {
        "novel_issues": [n.to_dict() for n in insights.novel_issues],
        "count": len(insights.novel_issues),
    }


@app.get("/insights/recommendations")
async def recommendations_endpoint():
    """Rule-table recommendations. ADVISORY ONLY."""
    insights = await _insights()
    return {
        "recommendations": [r.to_dict() for r in insights.recommendations],
        "count": len(insights.recommendations),
        "advisory_only": True,
    }


@app.get("/insights/compliance")
async def compliance_endpoint():
    insights = await _insights()
    return {"compliance_metrics": insights.compliance_metrics.to_dict()}


# -----------------------------------------------------------------------------
# API Endpoints - Success Rates
# -----------------------------------------------------------------------------
@app.get("/success-rates")
async def success_rates_endpoint():
    manager = await _manager()
    rates = manager.get_success_rates()
    return {
        "success_rates": [s.to_dict() for s in rates],
        "count": len(rates),
    }


@app.post("/defects/prioritize")
async def prioritize_endpoint(request: PrioritizeRequest):
    """
    Annotate defects with their court track record.

    Pass `defects` directly, or `analysis_id` to prioritize a stored
    analysis's findings.
    """
    try:
        manager = await _manager()
        if request.analysis_id is not None:
            prioritized = await manager.prioritize_analysis(request.analysis_id)
        else:
            prioritized = manager.prioritize_defects([d.model_dump() for d in request.defects])
    except UnknownAnalysisError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise _storage_unavailable("prioritize defects", e)

    return {
        "defects": [p.to_dict() for p in prioritized],
        "count": len(prioritized),
    }


# -----------------------------------------------------------------------------
# API Endpoints - Patterns
# -----------------------------------------------------------------------------
@app.get("/patterns")
async def patterns_endpoint(pattern_type: Optional[str] = None):
    """
    Document patterns logged per analysis.

    Query parameters:
    - pattern_type: Optional filter ("Recurring Issue", "Temporal Pattern",
      "Severity Pattern")
    """
    try:
        manager = await _manager()
        if pattern_type:
            patterns = await manager.store.get_patterns_by_type(pattern_type)
        else:
            patterns = await manager.store.get_all_patterns()
    except StorageError as e:
        raise _storage_unavailable("get patterns", e)

    return {
        "patterns": patterns,
        "count": len(patterns),
    }


@app.get("/patterns/learned")
async def learned_patterns_endpoint():
    manager = await _manager()
    learned = manager.engine.get_learned_patterns()
    return {
        "patterns": [p.to_dict() for p in learned],
        "count": len(learned),
    }


# -----------------------------------------------------------------------------
# API Endpoints - Reports
# -----------------------------------------------------------------------------
@app.get("/report")
async def report_endpoint():
    try:
        manager = await _manager()
        report = await manager.generate_intelligence_report()
    except StorageError as e:
        raise _storage_unavailable("generate report", e)
    return report.to_dict()


@app.post("/report/export")
async def export_report_endpoint():
    """Write the current intelligence report to a YAML file."""
    try:
        manager = await _manager()
        report = await manager.generate_intelligence_report()
        file_path = export_report(report)
    except StorageError as e:
        raise _storage_unavailable("generate report", e)
    except OSError as e:
        logger.error(f"Failed to export report: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to export report: {str(e)}")

    return {
        "path": str(file_path),
        "reports_dir": str(file_path.parent),
        "message": "Report exported",
    }


# -----------------------------------------------------------------------------
# API Endpoints - Maintenance
# -----------------------------------------------------------------------------
@app.delete("/data")
async def clear_data_endpoint(confirm: bool = False):
    """
    Delete ALL analyses, outcomes and patterns.

    Requires `?confirm=true`.
    """
    if not confirm:
        raise HTTPException(
            status_code=400,
            detail="This deletes ALL analysis data, outcomes, and patterns. Pass confirm=true to proceed."
        )

    try:
        manager = await _manager()
        await manager.clear_all_data(confirm=True)
    except StorageError as e:
        raise _storage_unavailable("clear data", e)

    return {"cleared": True, "message": "All data cleared"}


# -----------------------------------------------------------------------------
# Startup Events
# -----------------------------------------------------------------------------
@app.on_event("startup")
async def startup_event():
    """Initialize the intelligence system on startup."""
    logger.info(f"{SERVICE_NAME} starting up...")
    await get_intelligence_manager().initialize()
    logger.info("ADVISORY ONLY: Recommendations are never acted upon automatically.")


# -----------------------------------------------------------------------------
# Main Entry Point (for development)
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
