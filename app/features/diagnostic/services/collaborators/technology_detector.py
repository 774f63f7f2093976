import asyncio
from datetime import date, datetime, timezone
from typing import Optional

import httpx
from pydantic import ValidationError

from app.features.diagnostic.errors import RateLimitError, StageError
from app.features.diagnostic.models.analysis import Stage
from app.features.diagnostic.schemas.payloads import DetectedTechnology, TechnologyPayload
from app.features.diagnostic.schemas.upstream import BuiltWithResponse, BuiltWithTechnology
from app.platform.config import Settings
from app.platform.logger import get_logger
from app.platform.utils.url_validator import extract_domain

logger = get_logger(__name__)


def _to_date(epoch_ms: Optional[int]) -> Optional[date]:
    if not epoch_ms:
        return None
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).date()


class TechnologyDetector:
    """Looks up a domain's technology stack on BuiltWith."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    async def detect(self, target_url: str) -> TechnologyPayload:
        domain = extract_domain(target_url)
        logger.info(f"Starting technology detection for {domain}")

        # Free tier allows roughly one lookup per second
        if self.settings.BUILTWITH_REQUEST_DELAY_SECONDS > 0:
            await asyncio.sleep(self.settings.BUILTWITH_REQUEST_DELAY_SECONDS)

        params = {"KEY": self.settings.BUILTWITH_API_KEY, "LOOKUP": domain}
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.TECHNOLOGY_TIMEOUT_SECONDS, transport=self.transport
            ) as client:
                response = await client.get(self.settings.BUILTWITH_API_URL, params=params)
        except httpx.TimeoutException as e:
            raise StageError(Stage.technologies, "BuiltWith request timed out") from e
        except httpx.HTTPError as e:
            raise StageError(Stage.technologies, f"BuiltWith request failed: {type(e).__name__}") from e

        if response.status_code == 429:
            raise RateLimitError(Stage.technologies, "BuiltWith request limit exceeded")
        if response.is_error:
            raise StageError(
                Stage.technologies,
                f"BuiltWith request failed: {response.status_code} {response.reason_phrase}",
            )

        try:
            body = BuiltWithResponse.model_validate(response.json())
        except ValueError as e:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            raise StageError(Stage.technologies, "BuiltWith returned an unreadable response") from e

        if body.errors:
            raise StageError(Stage.technologies, f"BuiltWith API error: {body.errors[0].message}")

        technologies = self._first_detected_path(body)
        if not technologies:
            logger.info(f"No technologies detected for {domain}")
        else:
            logger.info(f"Technology detection finished: {len(technologies)} found for {domain}")

        try:
            return TechnologyPayload.from_technologies(
                [self._to_detected(tech) for tech in technologies],
                last_updated=datetime.now(timezone.utc),
            )
        except ValidationError as e:
            raise StageError(Stage.technologies, "BuiltWith returned malformed technology data") from e

    @staticmethod
    def _first_detected_path(body: BuiltWithResponse) -> list:
        """Technologies of the first path that reports any. Empty when nothing was found."""
        if not body.results or body.results[0].result is None:
            return []
        for path in body.results[0].result.paths:
            if path.technologies:
                return path.technologies
        return []

    @staticmethod
    def _to_detected(tech: BuiltWithTechnology) -> DetectedTechnology:
        return DetectedTechnology(
            name=tech.name,
            category=tech.tag,
            first_detected=_to_date(tech.first_detected),
            last_detected=_to_date(tech.last_detected),
            categories=tech.categories or ([tech.tag] if tech.tag else []),
        )
