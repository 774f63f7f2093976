"""
Analysis Schemas

Request and response models for the analyze API endpoints.
"""
import re
from datetime import datetime
from typing import Dict, Optional

from pydantic import ConfigDict, EmailStr, Field, field_validator

from app.features.diagnostic.models.analysis import AnalysisStatus
from app.features.diagnostic.schemas.payloads import (
    ContentPayload,
    InsightPayload,
    PerformancePayload,
    TechnologyPayload,
)
from app.platform.schemas import CamelModel
from app.platform.utils.url_validator import validate_url

PHONE_PATTERN = re.compile(r"^\(\d{2}\) \d{5}-\d{4}$")


class AnalysisLaunchRequest(CamelModel):
    """Diagnostic request submitted by a visitor."""
    name: str = Field(..., min_length=3)
    email: EmailStr
    company: str = Field(..., min_length=2)
    target_url: str
    phone: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Maria Silva",
                "email": "maria@shop.example.com",
                "company": "Example Shop",
                "targetUrl": "https://shop.example.com",
                "phone": "(11) 98765-4321",
            }
        }
    )

    @field_validator("target_url")
    @classmethod
    def check_target_url(cls, value: str) -> str:
        is_valid, url, error = validate_url(value)
        if not is_valid:
            raise ValueError(error)
        return url

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        if not PHONE_PATTERN.match(value):
            raise ValueError("Phone must be in the format (DD) 99999-9999")
        return value


class AnalysisLaunchResponse(CamelModel):
    analysis_id: str
    status: AnalysisStatus
    estimated_total_seconds: int


class ProgressView(CamelModel):
    completed_count: int
    total_count: int
    percentage: int
    current_step_label: str
    estimated_seconds_remaining: Optional[int] = None


class ProgressSummary(CamelModel):
    completed_count: int
    total_count: int
    percentage: int
    current_step_label: str


class AnalysisData(CamelModel):
    content: Optional[ContentPayload] = None
    technologies: Optional[TechnologyPayload] = None
    performance: Optional[PerformancePayload] = None
    insights: Optional[InsightPayload] = None


class AnalysisStatusResponse(CamelModel):
    id: str
    status: AnalysisStatus
    progress: ProgressSummary
    data: AnalysisData
    stage_errors: Dict[str, str] = Field(default_factory=dict)
    error_message: Optional[str] = None
    completed_at: Optional[datetime] = None
    estimated_seconds_remaining: Optional[int] = None
