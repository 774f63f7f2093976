"""
Stage payloads

Each collaborator decodes its upstream response into one of these models at
its own boundary, so malformed data never travels further down the pipeline.
The same models are the persisted format (JSON text columns).
"""
from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import Field, field_validator

from app.platform.schemas import CamelModel


# ============================================================================
# Content
# ============================================================================

class Headings(CamelModel):
    h1: List[str] = Field(default_factory=list)
    h2: List[str] = Field(default_factory=list)
    h3: List[str] = Field(default_factory=list)
    h4: List[str] = Field(default_factory=list)
    h5: List[str] = Field(default_factory=list)
    h6: List[str] = Field(default_factory=list)


class LinkSummary(CamelModel):
    internal: int = Field(0, ge=0)
    external: int = Field(0, ge=0)
    total: int = Field(0, ge=0)


class ImageDetail(CamelModel):
    src: str
    alt: str = ""


class ImageSummary(CamelModel):
    total: int = Field(0, ge=0)
    without_alt: int = Field(0, ge=0)
    details: List[ImageDetail] = Field(default_factory=list)


class ScriptSignatures(CamelModel):
    analytics: bool = False
    gtm: bool = False
    pixel: bool = False
    detected: List[str] = Field(default_factory=list)


class PageText(CamelModel):
    visible_text: str = ""
    html_length: int = Field(0, ge=0)


class ContentPayload(CamelModel):
    url: str
    title: str = ""
    meta_description: str = ""
    meta_keywords: str = ""
    og_tags: Dict[str, str] = Field(default_factory=dict)
    headings: Headings = Field(default_factory=Headings)
    links: LinkSummary = Field(default_factory=LinkSummary)
    images: ImageSummary = Field(default_factory=ImageSummary)
    scripts: ScriptSignatures = Field(default_factory=ScriptSignatures)
    content: PageText = Field(default_factory=PageText)
    screenshot: Optional[str] = None  # data:image/png;base64,...


# ============================================================================
# Technologies
# ============================================================================

class DetectedTechnology(CamelModel):
    name: str
    category: str
    first_detected: Optional[date] = None
    last_detected: Optional[date] = None
    categories: List[str] = Field(default_factory=list)


class TechnologyPayload(CamelModel):
    technologies: List[DetectedTechnology] = Field(default_factory=list)
    grouped_by_category: Dict[str, List[DetectedTechnology]] = Field(default_factory=dict)
    total_technologies: int = 0
    last_updated: datetime

    @classmethod
    def from_technologies(cls, technologies: List[DetectedTechnology], last_updated: datetime):
        grouped: Dict[str, List[DetectedTechnology]] = {}
        for tech in technologies:
            grouped.setdefault(tech.category or "Other", []).append(tech)
        return cls(
            technologies=technologies,
            grouped_by_category=grouped,
            total_technologies=len(technologies),
            last_updated=last_updated,
        )


# ============================================================================
# Performance
# ============================================================================

class PerformanceMetric(CamelModel):
    display_value: str
    numeric_value: float = 0


class PerformancePayload(CamelModel):
    strategy: Literal["mobile", "desktop"] = "mobile"
    score: int = Field(..., ge=0, le=100)
    fcp: PerformanceMetric  # First Contentful Paint
    lcp: PerformanceMetric  # Largest Contentful Paint
    tti: PerformanceMetric  # Time to Interactive
    cls: PerformanceMetric  # Cumulative Layout Shift
    speed_index: PerformanceMetric
    tbt: PerformanceMetric  # Total Blocking Time


# ============================================================================
# Insights
# ============================================================================

class Opportunity(CamelModel):
    title: str
    description: str
    impact: Literal["high", "medium", "low"]
    priority: int = Field(..., ge=1, le=5)  # 5 = most urgent


class InsightPayload(CamelModel):
    strengths: List[str] = Field(default_factory=list)
    opportunities: List[Opportunity] = Field(default_factory=list)
    strategic_insights: List[str] = Field(default_factory=list)
    overall_score: int = Field(..., ge=0, le=100)
    score_rationale: str
    note: Optional[str] = None
    is_fallback: bool = False

    @field_validator("opportunities")
    @classmethod
    def rank_by_priority(cls, value: List[Opportunity]) -> List[Opportunity]:
        return sorted(value, key=lambda item: item.priority, reverse=True)
