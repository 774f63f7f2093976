from fastapi import APIRouter, BackgroundTasks, Depends, status

from app.features.diagnostic.dependencies.pipeline import get_pipeline, get_store
from app.features.diagnostic.models.analysis import Analysis, Stage
from app.features.diagnostic.schemas.analysis import (
    AnalysisData,
    AnalysisLaunchRequest,
    AnalysisLaunchResponse,
    AnalysisStatusResponse,
    ProgressSummary,
)
from app.features.diagnostic.services.pipeline import AnalysisPipeline
from app.features.diagnostic.services.progress import build_progress
from app.features.diagnostic.services.store import AnalysisRecordStore
from app.platform.config import Settings, get_settings
from app.platform.logger import get_logger
from app.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter(prefix="/analyze", tags=["analyze"])

NO_CACHE_HEADERS = {"Cache-Control": "no-store, max-age=0"}


@router.post("", status_code=status.HTTP_200_OK)
async def launch_analysis(
    data: AnalysisLaunchRequest,
    background_tasks: BackgroundTasks,
    store: AnalysisRecordStore = Depends(get_store),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    """
    Start a website diagnostic.

    The record is created in processing state and the pipeline is scheduled to
    run after this response is sent. Poll GET /analyze/{analysis_id} for progress.
    """
    try:
        analysis = await store.create(data)
    except Exception as e:
        logger.error(f"Error starting analysis for {data.target_url}: {e}", exc_info=True)
        return api_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Internal error while starting the analysis.",
        )

    background_tasks.add_task(pipeline.run, analysis.id, analysis.target_url)
    logger.info(f"[{analysis.id}] Analysis queued for {analysis.target_url}")

    return api_response(
        message="Analysis started in background.",
        data=AnalysisLaunchResponse(
            analysis_id=analysis.id,
            status=analysis.status,
            estimated_total_seconds=settings.ANALYSIS_ESTIMATED_TOTAL_SECONDS,
        ),
    )


@router.get("/{analysis_id}")
async def get_analysis_status(
    analysis_id: str,
    store: AnalysisRecordStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """
    Current status, progress and whatever stage data is available so far.

    Stage slots that are still empty (not run yet, or failed) are omitted from
    data; failed stages are listed in stageErrors.
    """
    analysis = await store.get(analysis_id)
    if analysis is None:
        return api_response(
            status_code=status.HTTP_404_NOT_FOUND,
            message="Analysis not found.",
            headers=NO_CACHE_HEADERS,
        )

    progress = build_progress(
        analysis, total_budget_seconds=settings.ANALYSIS_ESTIMATED_TOTAL_SECONDS
    )
    response = AnalysisStatusResponse(
        id=analysis.id,
        status=analysis.status,
        progress=ProgressSummary(
            completed_count=progress.completed_count,
            total_count=progress.total_count,
            percentage=progress.percentage,
            current_step_label=progress.current_step_label,
        ),
        data=_stage_data(analysis),
        stage_errors=analysis.stage_errors or {},
        error_message=analysis.error_message,
        completed_at=analysis.completed_at,
        estimated_seconds_remaining=progress.estimated_seconds_remaining,
    )

    return api_response(
        message="Analysis status retrieved",
        data=response.model_dump(mode="json", by_alias=True, exclude_none=True),
        headers=NO_CACHE_HEADERS,
    )


def _stage_data(analysis: Analysis) -> AnalysisData:
    return AnalysisData(
        content=AnalysisRecordStore.load_payload(analysis, Stage.content),
        technologies=AnalysisRecordStore.load_payload(analysis, Stage.technologies),
        performance=AnalysisRecordStore.load_payload(analysis, Stage.performance),
        insights=AnalysisRecordStore.load_payload(analysis, Stage.insights),
    )
