"""
Diagnostic pipeline orchestration.

Stages run strictly in order, each persisted before the next starts:

    content -> technologies -> performance -> insights -> completed | error

Stages 1-3 are independent collectors: a failure is recorded for that stage
and the run moves on. Insights need content and performance; without them the
run ends as error. When the AI stage fails, rule-based insights built from the
performance payload take its place.
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

from app.features.diagnostic.errors import (
    FatalOrchestratorError,
    PrerequisiteMissingError,
    RateLimitError,
    StageError,
)
from app.features.diagnostic.models.analysis import Stage
from app.features.diagnostic.schemas.payloads import (
    ContentPayload,
    InsightPayload,
    PerformancePayload,
    TechnologyPayload,
)
from app.features.diagnostic.services.collaborators import Collaborators
from app.features.diagnostic.services.collaborators.fallback import build_fallback_insights
from app.features.diagnostic.services.store import AnalysisRecordStore
from app.platform.config import Settings
from app.platform.logger import get_logger
from app.platform.utils.backoff import retry_with_backoff

logger = get_logger(__name__)

T = TypeVar("T")


class AnalysisPipeline:
    """Runs the four diagnostic stages for one analysis record."""

    def __init__(
        self,
        store: AnalysisRecordStore,
        collaborators: Collaborators,
        settings: Settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.collaborators = collaborators
        self.settings = settings
        self.sleep = sleep

    async def run(self, analysis_id: str, target_url: str) -> None:
        """
        Execute a whole run. Never raises.

        Scheduled as a background task after the launch response is sent, so
        nobody is awaiting it: any fault outside a stage is logged and turned
        into a terminal error status. A process crash mid-run leaves the record
        in processing; runs do not survive restarts.
        """
        started = time.monotonic()
        logger.info(f"[{analysis_id}] Pipeline started for {target_url}")
        try:
            await self._execute(analysis_id, target_url)
        except Exception as e:
            logger.error(f"[{analysis_id}] Pipeline fault: {e}", exc_info=True)
            await self._finalize_fatal(analysis_id)
        finally:
            logger.info(f"[{analysis_id}] Pipeline finished in {time.monotonic() - started:.1f}s")

    async def _execute(self, analysis_id: str, target_url: str) -> None:
        content: Optional[ContentPayload] = await self._run_stage(
            analysis_id,
            Stage.content,
            lambda: self.collaborators.content.collect(target_url),
            timeout=self.settings.CONTENT_TIMEOUT_SECONDS,
            # headless rendering is not quota-limited
            with_backoff=False,
        )
        technologies: Optional[TechnologyPayload] = await self._run_stage(
            analysis_id,
            Stage.technologies,
            lambda: self.collaborators.technologies.detect(target_url),
            timeout=self.settings.TECHNOLOGY_TIMEOUT_SECONDS,
        )
        performance: Optional[PerformancePayload] = await self._run_stage(
            analysis_id,
            Stage.performance,
            lambda: self.collaborators.performance.score(target_url, self.settings.PERFORMANCE_STRATEGY),
            timeout=self.settings.PERFORMANCE_TIMEOUT_SECONDS,
        )

        missing = [
            stage.value
            for stage, payload in ((Stage.content, content), (Stage.performance, performance))
            if payload is None
        ]
        if missing:
            error = PrerequisiteMissingError(missing)
            logger.warning(f"[{analysis_id}] {error}")
            await self.store.mark_error(analysis_id, str(error))
            return

        insights = await self._run_insight_stage(analysis_id, content, technologies, performance)
        if insights is None:
            await self.store.mark_error(analysis_id, "Insight generation failed.")
            return

        await self.store.mark_completed(analysis_id)
        logger.info(f"[{analysis_id}] Analysis completed")

    async def _run_stage(
        self,
        analysis_id: str,
        stage: Stage,
        work: Callable[[], Awaitable[T]],
        *,
        timeout: float,
        with_backoff: bool = True,
    ) -> Optional[T]:
        """
        Run one collector stage and persist its outcome.

        Returns the payload, or None after recording the stage's failure.
        Store writes happen outside the try block: a failing store is a
        pipeline fault, not a stage failure.
        """
        started = time.monotonic()
        logger.info(f"[{analysis_id}] Stage '{stage.value}' started")

        # wait_for cannot stop a worker thread; a timed-out browser session
        # finishes in the background and is discarded.
        def attempt():
            return asyncio.wait_for(work(), timeout=timeout)

        try:
            if with_backoff:
                payload = await self._with_backoff(attempt)
            else:
                payload = await attempt()
        except StageError as e:
            message = e.message
        except asyncio.TimeoutError:
            message = f"Stage '{stage.value}' timed out after {timeout:g}s"
        except Exception as e:
            logger.error(f"[{analysis_id}] Unexpected error in stage '{stage.value}': {e}", exc_info=True)
            message = f"Unexpected error during stage '{stage.value}'"
        else:
            await self.store.save_stage_output(analysis_id, stage, payload)
            logger.info(
                f"[{analysis_id}] Stage '{stage.value}' done in {time.monotonic() - started:.1f}s"
            )
            return payload

        logger.warning(f"[{analysis_id}] Stage '{stage.value}' failed: {message}")
        await self.store.save_stage_error(analysis_id, stage, message)
        return None

    async def _run_insight_stage(
        self,
        analysis_id: str,
        content: ContentPayload,
        technologies: Optional[TechnologyPayload],
        performance: PerformancePayload,
    ) -> Optional[InsightPayload]:
        started = time.monotonic()
        logger.info(f"[{analysis_id}] Stage '{Stage.insights.value}' started")
        technology_list = technologies.technologies if technologies is not None else []

        def attempt():
            return asyncio.wait_for(
                self.collaborators.insights.generate(content, technology_list, performance),
                timeout=self.settings.INSIGHT_TIMEOUT_SECONDS,
            )

        try:
            insights = await self._with_backoff(attempt)
        except Exception as e:
            note = describe_insight_failure(e)
            if not self.settings.INSIGHT_FALLBACK_ENABLED:
                logger.warning(f"[{analysis_id}] Insight generation failed: {note}")
                await self.store.save_stage_error(analysis_id, Stage.insights, note)
                return None
            logger.warning(f"[{analysis_id}] Insight generation failed, using rule-based insights: {note}")
            insights = build_fallback_insights(performance, note)

        await self.store.save_stage_output(analysis_id, Stage.insights, insights)
        logger.info(
            f"[{analysis_id}] Stage '{Stage.insights.value}' done in {time.monotonic() - started:.1f}s"
        )
        return insights

    async def _with_backoff(self, attempt: Callable[[], Awaitable[T]]) -> T:
        return await retry_with_backoff(
            attempt,
            max_retries=self.settings.RETRY_MAX_RETRIES,
            initial_delay=self.settings.RETRY_INITIAL_DELAY_SECONDS,
            sleep=self.sleep,
        )

    async def _finalize_fatal(self, analysis_id: str) -> None:
        try:
            await self.store.mark_error(analysis_id, FatalOrchestratorError.public_message)
        except Exception as e:
            # Nothing left to report to; the record stays as it was
            logger.error(f"[{analysis_id}] Could not record pipeline fault: {e}", exc_info=True)


def describe_insight_failure(exc: BaseException) -> str:
    """Short, client-safe description of why the AI stage was unusable."""
    if isinstance(exc, RateLimitError):
        return "AI request limit exceeded."
    if isinstance(exc, StageError):
        return f"Intelligent analysis error: {exc.message}"
    if isinstance(exc, asyncio.TimeoutError):
        return "Intelligent analysis timed out."
    return "Intelligent analysis error: unexpected failure."
