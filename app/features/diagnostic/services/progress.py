from datetime import datetime, timezone
from typing import Optional

from app.features.diagnostic.models.analysis import STAGE_ORDER, Analysis, AnalysisStatus, Stage
from app.features.diagnostic.schemas.analysis import ProgressView

TOTAL_STAGES = len(STAGE_ORDER)

STEP_LABELS = {
    Stage.content: "collecting content",
    Stage.technologies: "detecting technologies",
    Stage.performance: "scoring performance",
    Stage.insights: "generating insights",
}
COMPLETED_LABEL = "completed"
ERROR_LABEL = "error"


def count_settled_stages(analysis: Analysis) -> int:
    """
    Stages in their final state, walking in pipeline order.

    A stage is settled once its payload is stored or its failure is recorded.
    Counting stops at the first stage that has not run yet, so the value never
    decreases between polls.
    """
    count = 0
    for stage in STAGE_ORDER:
        if not analysis.is_stage_settled(stage):
            break
        count += 1
    return count


def build_progress(
    analysis: Analysis,
    *,
    total_budget_seconds: int,
    now: Optional[datetime] = None,
) -> ProgressView:
    """Normalized progress view of a record. Pure: reads the record, never writes."""
    completed_count = count_settled_stages(analysis)
    status = analysis.status

    if status == AnalysisStatus.completed:
        label = COMPLETED_LABEL
    elif status == AnalysisStatus.error:
        label = ERROR_LABEL
    elif completed_count < TOTAL_STAGES:
        label = STEP_LABELS[STAGE_ORDER[completed_count]]
    else:
        # All four settled, finalization not yet written
        label = COMPLETED_LABEL

    remaining = None
    if status == AnalysisStatus.processing:
        elapsed = _elapsed_seconds(analysis.created_at, now or datetime.now(timezone.utc))
        remaining = max(0, round(total_budget_seconds - elapsed))
    elif status == AnalysisStatus.completed:
        remaining = 0

    return ProgressView(
        completed_count=completed_count,
        total_count=TOTAL_STAGES,
        percentage=round(100 * completed_count / TOTAL_STAGES),
        current_step_label=label,
        estimated_seconds_remaining=remaining,
    )


def _elapsed_seconds(created_at: Optional[datetime], now: datetime) -> float:
    if created_at is None:
        return 0.0
    # SQLite hands back naive timestamps; they are UTC
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - created_at).total_seconds()
