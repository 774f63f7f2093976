from typing import Literal, Optional

import httpx

from app.features.diagnostic.errors import RateLimitError, StageError
from app.features.diagnostic.models.analysis import Stage
from app.features.diagnostic.schemas.payloads import PerformanceMetric, PerformancePayload
from app.features.diagnostic.schemas.upstream import LighthouseAudit, PageSpeedResponse
from app.platform.config import Settings
from app.platform.logger import get_logger

logger = get_logger(__name__)

DeviceStrategy = Literal["mobile", "desktop"]

# payload field -> (lighthouse audit id, display fallback)
METRIC_AUDITS = {
    "fcp": ("first-contentful-paint", "N/A"),
    "lcp": ("largest-contentful-paint", "N/A"),
    "tti": ("interactive", "N/A"),
    "cls": ("cumulative-layout-shift", "0"),
    "speed_index": ("speed-index", "N/A"),
    "tbt": ("total-blocking-time", "N/A"),
}


class PerformanceScorer:
    """Scores a page with the PageSpeed Insights (Lighthouse) API."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    async def score(self, target_url: str, strategy: DeviceStrategy = "mobile") -> PerformancePayload:
        logger.info(f"Starting performance analysis ({strategy}) for {target_url}")

        params = {
            "url": target_url,
            "key": self.settings.PAGESPEED_API_KEY,
            "strategy": strategy,
            "category": "PERFORMANCE",
        }
        timeout = self.settings.PERFORMANCE_TIMEOUT_SECONDS
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                response = await client.get(self.settings.PAGESPEED_API_URL, params=params)
        except httpx.TimeoutException as e:
            raise StageError(Stage.performance, f"Performance analysis timed out ({timeout:g}s)") from e
        except httpx.HTTPError as e:
            raise StageError(Stage.performance, f"PageSpeed request failed: {type(e).__name__}") from e

        if response.status_code == 429:
            raise RateLimitError(Stage.performance, "PageSpeed request limit exceeded")

        try:
            body = PageSpeedResponse.model_validate(response.json())
        except ValueError as e:
            if response.is_error:
                raise StageError(Stage.performance, f"PageSpeed API error: {response.status_code}") from e
            raise StageError(Stage.performance, "PageSpeed returned an unreadable response") from e

        if body.error is not None:
            if body.error.code == 429:
                raise RateLimitError(Stage.performance, body.error.message or "PageSpeed request limit exceeded")
            raise StageError(Stage.performance, body.error.message or f"PageSpeed API error: {response.status_code}")
        if response.is_error:
            raise StageError(Stage.performance, f"PageSpeed API error: {response.status_code}")
        if body.lighthouse_result is None:
            raise StageError(Stage.performance, "PageSpeed response has no Lighthouse result")

        result = body.lighthouse_result
        metrics = {
            field: self._metric(result.audits.get(audit_id), fallback)
            for field, (audit_id, fallback) in METRIC_AUDITS.items()
        }
        payload = PerformancePayload(
            strategy=strategy,
            score=round((result.categories.performance.score or 0) * 100),
            **metrics,
        )
        logger.info(f"Performance analysis finished. Score: {payload.score}")
        return payload

    @staticmethod
    def _metric(audit: Optional[LighthouseAudit], fallback: str) -> PerformanceMetric:
        if audit is None:
            return PerformanceMetric(display_value=fallback, numeric_value=0)
        return PerformanceMetric(
            display_value=audit.display_value or fallback,
            numeric_value=audit.numeric_value or 0,
        )
