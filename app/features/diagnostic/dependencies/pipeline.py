from fastapi import Depends, Request

from app.features.diagnostic.services.collaborators import Collaborators
from app.features.diagnostic.services.pipeline import AnalysisPipeline
from app.features.diagnostic.services.store import AnalysisRecordStore
from app.platform.config import Settings, get_settings
from app.platform.db.session import SessionLocal


def get_store() -> AnalysisRecordStore:
    return AnalysisRecordStore(SessionLocal)


def get_collaborators(request: Request) -> Collaborators:
    """Collaborators wired once at startup (see the app lifespan)."""
    return request.app.state.collaborators


def get_pipeline(
    store: AnalysisRecordStore = Depends(get_store),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_settings),
) -> AnalysisPipeline:
    return AnalysisPipeline(store=store, collaborators=collaborators, settings=settings)
