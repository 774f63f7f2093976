"""
Upstream response shapes

Only the fields the collaborators read are declared; anything else in the
third-party payload is ignored.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Upstream(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ============================================================================
# BuiltWith (technology lookup)
# ============================================================================

class BuiltWithTechnology(_Upstream):
    name: str = Field(..., alias="Name")
    tag: str = Field("", alias="Tag")
    first_detected: Optional[int] = Field(None, alias="FirstDetected")  # epoch ms
    last_detected: Optional[int] = Field(None, alias="LastDetected")  # epoch ms
    categories: Optional[List[str]] = Field(None, alias="Categories")


class BuiltWithPath(_Upstream):
    domain: str = Field("", alias="Domain")
    technologies: List[BuiltWithTechnology] = Field(default_factory=list, alias="Technologies")


class BuiltWithResult(_Upstream):
    paths: List[BuiltWithPath] = Field(default_factory=list, alias="Paths")


class BuiltWithResultEntry(_Upstream):
    result: Optional[BuiltWithResult] = Field(None, alias="Result")


class BuiltWithError(_Upstream):
    message: str = Field("", alias="Message")


class BuiltWithResponse(_Upstream):
    results: List[BuiltWithResultEntry] = Field(default_factory=list, alias="Results")
    errors: List[BuiltWithError] = Field(default_factory=list, alias="Errors")


# ============================================================================
# PageSpeed Insights
# ============================================================================

class LighthouseAudit(_Upstream):
    display_value: Optional[str] = Field(None, alias="displayValue")
    numeric_value: Optional[float] = Field(None, alias="numericValue")


class LighthouseCategory(_Upstream):
    score: Optional[float] = None  # 0-1


class LighthouseCategories(_Upstream):
    performance: LighthouseCategory


class LighthouseResult(_Upstream):
    categories: LighthouseCategories
    audits: Dict[str, LighthouseAudit] = Field(default_factory=dict)


class PageSpeedError(_Upstream):
    code: Optional[int] = None
    message: str = ""


class PageSpeedResponse(_Upstream):
    lighthouse_result: Optional[LighthouseResult] = Field(None, alias="lighthouseResult")
    error: Optional[PageSpeedError] = None
