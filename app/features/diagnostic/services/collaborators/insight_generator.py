import json
from typing import List

from openai import APIError, APITimeoutError, AsyncOpenAI
from openai import RateLimitError as OpenAIRateLimitError
from pydantic import ValidationError

from app.features.diagnostic.errors import RateLimitError, StageError
from app.features.diagnostic.models.analysis import Stage
from app.features.diagnostic.schemas.payloads import (
    ContentPayload,
    DetectedTechnology,
    InsightPayload,
    PerformancePayload,
)
from app.platform.config import Settings
from app.platform.logger import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = "You are a conversion-optimization expert. Always respond with valid JSON only."


def build_insight_prompt(
    content: ContentPayload,
    technologies: List[DetectedTechnology],
    performance: PerformancePayload,
) -> str:
    headings = {
        "h1": content.headings.h1,
        "h2": content.headings.h2,
        "h3": content.headings.h3,
    }
    stack = [f"{tech.name} ({tech.category})" for tech in technologies]

    return f"""
<role>
You are a senior CRO (Conversion Rate Optimization) and UX specialist for e-commerce.
Your analysis must be technical and data-driven, yet actionable for store owners.
</role>

<constraints>
1. Be objective and rely strictly on the data provided.
2. Focus on high-impact opportunities to increase conversion.
3. Consider local market context (payment methods, shipping, trust signals).
4. Use professional language.
5. The response MUST be valid JSON following the requested schema.
</constraints>

<context>
## Analyzed site: {content.url}

### Content and on-page SEO:
- Title: {content.title}
- Description: {content.meta_description}
- Keywords: {content.meta_keywords}
- Headings (H1-H3): {json.dumps(headings, ensure_ascii=False)}
- Images without alt text: {content.images.without_alt} of {content.images.total}
- Links: {content.links.internal} internal, {content.links.external} external
- Detected scripts: {', '.join(content.scripts.detected) or 'none'}

### Detected technologies (stack):
{json.dumps(stack, indent=2, ensure_ascii=False)}

### Performance (Core Web Vitals, {performance.strategy}):
- Performance score: {performance.score}/100
- FCP (First Contentful Paint): {performance.fcp.display_value}
- LCP (Largest Contentful Paint): {performance.lcp.display_value}
- CLS (Cumulative Layout Shift): {performance.cls.display_value}
- TTI (Time to Interactive): {performance.tti.display_value}
- Speed Index: {performance.speed_index.display_value}
- TBT (Total Blocking Time): {performance.tbt.display_value}
</context>

<task>
Analyze this store and answer with JSON in exactly this format:

{{
  "strengths": ["up to 5 detailed strengths"],
  "opportunities": [
    {{
      "title": "opportunity title",
      "description": "the problem and the suggested solution",
      "impact": "high|medium|low",
      "priority": 1-5 (5 is the highest priority)
    }}
  ],
  "strategic_insights": ["3 business insights combining technology stack and performance"],
  "overall_score": 0-100,
  "score_rationale": "short explanation of the score"
}}
</task>
"""


def parse_insight_response(response_text: str) -> InsightPayload:
    """Decode the model's JSON answer, tolerating markdown code fences."""
    cleaned = (response_text or "").strip()
    if not cleaned:
        raise StageError(Stage.insights, "Empty response from the AI model")

    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
        cleaned = cleaned.strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error in AI response: {e}")
        raise StageError(Stage.insights, "Failed to process the AI response") from e

    try:
        payload = InsightPayload.model_validate(data)
    except ValidationError as e:
        raise StageError(Stage.insights, "AI response does not match the insight schema") from e
    return payload.model_copy(update={"note": None, "is_fallback": False})


class InsightGenerator:
    """
    Generates the conversion report with an OpenAI-compatible chat model.

    Retries are left to the caller's backoff executor, so the SDK's own retry
    loop is disabled.
    """

    def __init__(self, settings: Settings, client: AsyncOpenAI = None):
        self.settings = settings
        self.client = client or AsyncOpenAI(
            api_key=settings.GOOGLE_GEMINI_API_KEY,
            base_url=settings.INSIGHT_API_BASE_URL,
            timeout=settings.INSIGHT_TIMEOUT_SECONDS,
            max_retries=0,
        )

    async def generate(
        self,
        content: ContentPayload,
        technologies: List[DetectedTechnology],
        performance: PerformancePayload,
    ) -> InsightPayload:
        logger.info(f"Starting insight generation for {content.url}")
        prompt = build_insight_prompt(content, technologies, performance)

        try:
            completion = await self.client.chat.completions.create(
                model=self.settings.INSIGHT_MODEL,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.settings.INSIGHT_TEMPERATURE,
                max_tokens=self.settings.INSIGHT_MAX_OUTPUT_TOKENS,
                response_format={"type": "json_object"},
            )
        except OpenAIRateLimitError as e:
            raise RateLimitError(Stage.insights, "AI request limit exceeded") from e
        except APITimeoutError as e:
            raise StageError(Stage.insights, "AI request timed out") from e
        except APIError as e:
            raise StageError(Stage.insights, f"AI request failed: {type(e).__name__}") from e

        usage = completion.usage
        if usage is not None:
            logger.info(
                f"Insight tokens: prompt={usage.prompt_tokens}, "
                f"completion={usage.completion_tokens}, total={usage.total_tokens}"
            )

        if not completion.choices:
            raise StageError(Stage.insights, "Empty response from the AI model")
        result = parse_insight_response(completion.choices[0].message.content or "")
        logger.info(f"Insight generation finished: score {result.overall_score}/100")
        return result
