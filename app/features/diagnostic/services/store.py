from datetime import datetime, timezone
from typing import Optional, Type

from pydantic import BaseModel as PydanticModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.diagnostic.errors import InvalidStatusTransition
from app.features.diagnostic.models.analysis import (
    STAGE_COLUMNS,
    Analysis,
    AnalysisStatus,
    Stage,
)
from app.features.diagnostic.schemas.analysis import AnalysisLaunchRequest
from app.features.diagnostic.schemas.payloads import (
    ContentPayload,
    InsightPayload,
    PerformancePayload,
    TechnologyPayload,
)
from app.platform.logger import get_logger

logger = get_logger(__name__)

PAYLOAD_TYPES: dict[Stage, Type[PydanticModel]] = {
    Stage.content: ContentPayload,
    Stage.technologies: TechnologyPayload,
    Stage.performance: PerformancePayload,
    Stage.insights: InsightPayload,
}


class AnalysisRecordStore:
    """
    Durable keyed store for analysis records.

    Every write opens its own session and commits before returning, so a poller
    reading through another session sees each stage as soon as it is persisted.
    Only the pipeline owning an id writes to it; no locking is needed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, request: AnalysisLaunchRequest) -> Analysis:
        async with self.session_factory() as db:
            analysis = Analysis(
                name=request.name,
                email=request.email,
                company=request.company,
                target_url=request.target_url,
                phone=request.phone,
                status=AnalysisStatus.pending,
            )
            _transition(analysis, AnalysisStatus.processing)
            db.add(analysis)
            try:
                await db.commit()
            except Exception:
                await db.rollback()
                raise
            await db.refresh(analysis)
            return analysis

    async def get(self, analysis_id: str) -> Optional[Analysis]:
        async with self.session_factory() as db:
            result = await db.execute(select(Analysis).where(Analysis.id == analysis_id))
            return result.scalar_one_or_none()

    async def save_stage_output(self, analysis_id: str, stage: Stage, payload: PydanticModel) -> None:
        async with self.session_factory() as db:
            analysis = await self._load(db, analysis_id)
            column = STAGE_COLUMNS[stage]
            if getattr(analysis, column) is not None:
                raise ValueError(f"Stage '{stage.value}' of analysis {analysis_id} is already stored")
            setattr(analysis, column, payload.model_dump_json())
            await db.commit()

    async def save_stage_error(self, analysis_id: str, stage: Stage, message: str) -> None:
        async with self.session_factory() as db:
            analysis = await self._load(db, analysis_id)
            # Reassign so SQLAlchemy sees the JSON column as changed
            errors = dict(analysis.stage_errors or {})
            errors[stage.value] = message
            analysis.stage_errors = errors
            await db.commit()

    async def mark_completed(self, analysis_id: str) -> None:
        async with self.session_factory() as db:
            analysis = await self._load(db, analysis_id)
            _transition(analysis, AnalysisStatus.completed)
            analysis.completed_at = datetime.now(timezone.utc)
            await db.commit()

    async def mark_error(self, analysis_id: str, message: str) -> None:
        async with self.session_factory() as db:
            analysis = await self._load(db, analysis_id)
            _transition(analysis, AnalysisStatus.error)
            analysis.error_message = message
            analysis.completed_at = datetime.now(timezone.utc)
            await db.commit()

    @staticmethod
    def load_payload(analysis: Analysis, stage: Stage) -> Optional[PydanticModel]:
        """Decode a stored stage blob, or None when the slot is empty."""
        raw = analysis.stage_data(stage)
        if raw is None:
            return None
        return PAYLOAD_TYPES[stage].model_validate_json(raw)

    @staticmethod
    async def _load(db: AsyncSession, analysis_id: str) -> Analysis:
        result = await db.execute(select(Analysis).where(Analysis.id == analysis_id))
        analysis = result.scalar_one_or_none()
        if analysis is None:
            raise LookupError(f"Analysis {analysis_id} not found")
        return analysis


def _transition(analysis: Analysis, target: AnalysisStatus) -> None:
    current = analysis.status or AnalysisStatus.pending
    if not current.can_transition_to(target):
        raise InvalidStatusTransition(
            f"Analysis {analysis.id} cannot move from {current.value} to {target.value}"
        )
    analysis.status = target
