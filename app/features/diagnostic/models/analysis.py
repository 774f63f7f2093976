import enum

from sqlalchemy import JSON, Column, DateTime, Enum, Index, String, Text

from app.platform.db.base import BaseModel


class AnalysisStatus(str, enum.Enum):
    """Run status. Terminal states never transition again."""
    pending = "pending"
    processing = "processing"
    completed = "completed"
    error = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisStatus.completed, AnalysisStatus.error)

    def can_transition_to(self, target: "AnalysisStatus") -> bool:
        if self.is_terminal:
            return False
        if self == AnalysisStatus.processing:
            return target != AnalysisStatus.pending
        return True


class Stage(str, enum.Enum):
    """Pipeline stages, in execution order."""
    content = "content"
    technologies = "technologies"
    performance = "performance"
    insights = "insights"


STAGE_ORDER = (Stage.content, Stage.technologies, Stage.performance, Stage.insights)

# Stage -> column holding its serialized payload
STAGE_COLUMNS = {
    Stage.content: "content_data",
    Stage.technologies: "technologies_data",
    Stage.performance: "performance_data",
    Stage.insights: "insights_data",
}


class Analysis(BaseModel):

    __tablename__ = "analyses"

    status = Column(Enum(AnalysisStatus), default=AnalysisStatus.pending, nullable=False, index=True)

    # Request target (immutable after creation)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    company = Column(String(255), nullable=False)
    target_url = Column(Text, nullable=False)
    phone = Column(String(32), nullable=True)

    # Stage payloads, serialized JSON. Independently nullable so partial progress survives.
    content_data = Column(Text, nullable=True)
    technologies_data = Column(Text, nullable=True)
    performance_data = Column(Text, nullable=True)
    insights_data = Column(Text, nullable=True)

    # stage name -> short error text, for stages that ran and failed
    stage_errors = Column(JSON, nullable=True)

    error_message = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_analyses_created_at', 'created_at'),
    )

    def stage_data(self, stage: Stage):
        return getattr(self, STAGE_COLUMNS[stage])

    def stage_error(self, stage: Stage):
        return (self.stage_errors or {}).get(stage.value)

    def is_stage_settled(self, stage: Stage) -> bool:
        """Payload stored, or the stage ran and failed."""
        return self.stage_data(stage) is not None or self.stage_error(stage) is not None

    def __repr__(self) -> str:
        return f"<Analysis(id='{self.id}', status='{self.status}', target_url='{self.target_url}')>"
