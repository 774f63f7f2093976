import json
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest
from selenium.common.exceptions import TimeoutException
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webelement import WebElement

from app.features.diagnostic.errors import RateLimitError, StageError
from app.features.diagnostic.services.collaborators import (
    ContentCollector,
    InsightGenerator,
    PerformanceScorer,
    TechnologyDetector,
)
from app.features.diagnostic.services.collaborators.insight_generator import (
    build_insight_prompt,
    parse_insight_response,
)
from tests.features.diagnostic.fakes import (
    TARGET_URL,
    make_content,
    make_performance,
    make_technologies,
)

INSIGHT_JSON = {
    "strengths": ["Fast checkout"],
    "opportunities": [
        {"title": "Add reviews", "description": "Show product reviews.", "impact": "medium", "priority": 2},
        {"title": "Compress images", "description": "Hero images are heavy.", "impact": "high", "priority": 5},
    ],
    "strategic_insights": ["Invest in mobile."],
    "overall_score": 68,
    "score_rationale": "Good stack, slow mobile experience.",
}


def json_transport(status_code, body, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(request)
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)
    return httpx.MockTransport(handler)


# ============================================================================
# Content
# ============================================================================

class TestContentCollector:
    @pytest.fixture
    def mock_driver(self):
        driver = MagicMock()
        driver.current_url = "https://shop.example.com/"
        return driver

    def element(self, text="", **attributes):
        element = MagicMock(spec=WebElement)
        element.text = text
        element.get_attribute.side_effect = lambda name: attributes.get(name)
        return element

    def test_extract_headings(self, mock_driver):
        mock_driver.find_elements.side_effect = lambda by, tag: (
            [self.element("Welcome"), self.element("   ")] if tag == "h1" else []
        )

        headings = ContentCollector.extract_headings(mock_driver)

        assert headings["h1"] == ["Welcome"]
        assert headings["h6"] == []

    def test_extract_links_splits_internal_and_external(self, mock_driver):
        mock_driver.find_elements.return_value = [
            self.element(href="https://shop.example.com/cart"),
            self.element(href="https://instagram.com/shop"),
            self.element(href="mailto:help@shop.example.com"),
            self.element(href=None),
        ]

        links = ContentCollector.extract_links(mock_driver)

        assert links == {"internal": 1, "external": 1, "total": 4}

    def test_extract_images_counts_missing_alt(self, mock_driver):
        mock_driver.find_elements.return_value = [
            self.element(src="hero.jpg", alt="Summer sale"),
            self.element(src="logo.png", alt=" "),
            self.element(src="badge.png"),
        ]

        images = ContentCollector.extract_images(mock_driver)

        assert images["total"] == 3
        assert images["without_alt"] == 2
        assert images["details"][0] == {"src": "hero.jpg", "alt": "Summer sale"}

    def test_extract_scripts_detects_marketing_tags(self, mock_driver):
        mock_driver.find_elements.return_value = [
            self.element(src="https://www.googletagmanager.com/gtm.js?id=GTM-1"),
            self.element(innerHTML="gtag('config', 'G-123');"),
        ]

        scripts = ContentCollector.extract_scripts(mock_driver)

        assert scripts["gtm"] is True
        assert scripts["analytics"] is True
        assert scripts["pixel"] is False
        assert scripts["detected"] == ["Google Analytics", "Google Tag Manager"]

    def test_extract_meta_falls_back_to_property(self, mock_driver):
        og = self.element(content="Shoes for everyone")
        mock_driver.find_elements.side_effect = lambda by, selector: [og] if "property" in selector else []

        assert ContentCollector.extract_meta(mock_driver, "description") == "Shoes for everyone"

    async def test_collect_builds_payload(self, mock_driver, settings):
        mock_driver.title = "Example Shop"
        mock_driver.find_elements.return_value = []
        mock_driver.find_element.return_value = self.element("Hello shoppers")
        mock_driver.page_source = "<html><body>Hello shoppers</body></html>"
        mock_driver.get_screenshot_as_base64.return_value = "iVBORw0KGgo="

        with patch.object(ContentCollector, "build_driver", return_value=mock_driver):
            payload = await ContentCollector(settings).collect(TARGET_URL)

        assert payload.url == TARGET_URL
        assert payload.title == "Example Shop"
        assert payload.content.visible_text == "Hello shoppers"
        assert payload.content.html_length == len(mock_driver.page_source)
        assert payload.screenshot == "data:image/png;base64,iVBORw0KGgo="
        mock_driver.find_element.assert_called_with(By.TAG_NAME, "body")
        mock_driver.quit.assert_called_once()

    async def test_navigation_timeout_is_a_stage_error(self, mock_driver, settings):
        mock_driver.get.side_effect = TimeoutException("page load")

        with patch.object(ContentCollector, "build_driver", return_value=mock_driver):
            with pytest.raises(StageError, match="Failed to analyze site"):
                await ContentCollector(settings).collect(TARGET_URL)

        mock_driver.quit.assert_called_once()


# ============================================================================
# Technologies
# ============================================================================

BUILTWITH_BODY = {
    "Results": [{
        "Result": {
            "Paths": [
                {"Domain": "example.com", "Technologies": []},
                {"Domain": "example.com", "Technologies": [
                    {"Name": "Shopify", "Tag": "ecommerce", "FirstDetected": 1614556800000,
                     "LastDetected": 1714521600000, "Categories": ["Hosted Solution"]},
                    {"Name": "jQuery", "Tag": "javascript"},
                ]},
            ]
        }
    }],
    "Errors": [],
}


class TestTechnologyDetector:
    async def test_detects_first_populated_path(self, settings):
        seen = []
        detector = TechnologyDetector(settings, transport=json_transport(200, BUILTWITH_BODY, seen))

        payload = await detector.detect("https://www.example.com/store")

        assert seen[0].url.params["LOOKUP"] == "example.com"
        assert seen[0].url.params["KEY"] == settings.BUILTWITH_API_KEY
        assert payload.total_technologies == 2
        assert [t.name for t in payload.technologies] == ["Shopify", "jQuery"]
        assert payload.technologies[0].first_detected == date(2021, 3, 1)
        assert payload.technologies[0].categories == ["Hosted Solution"]
        assert payload.technologies[1].categories == ["javascript"]
        assert set(payload.grouped_by_category) == {"ecommerce", "javascript"}

    async def test_nothing_detected_is_a_valid_empty_payload(self, settings):
        detector = TechnologyDetector(settings, transport=json_transport(200, {"Results": [], "Errors": []}))

        payload = await detector.detect(TARGET_URL)

        assert payload.technologies == []
        assert payload.total_technologies == 0

    async def test_rate_limit(self, settings):
        detector = TechnologyDetector(settings, transport=json_transport(429, {"Errors": []}))

        with pytest.raises(RateLimitError):
            await detector.detect(TARGET_URL)

    async def test_api_error_message(self, settings):
        body = {"Results": [], "Errors": [{"Message": "Invalid API key"}]}
        detector = TechnologyDetector(settings, transport=json_transport(200, body))

        with pytest.raises(StageError, match="BuiltWith API error: Invalid API key"):
            await detector.detect(TARGET_URL)

    async def test_malformed_body(self, settings):
        detector = TechnologyDetector(settings, transport=json_transport(200, "<html>oops</html>"))

        with pytest.raises(StageError, match="unreadable"):
            await detector.detect(TARGET_URL)

    async def test_server_error(self, settings):
        detector = TechnologyDetector(settings, transport=json_transport(503, {}))

        with pytest.raises(StageError) as exc_info:
            await detector.detect(TARGET_URL)
        assert not isinstance(exc_info.value, RateLimitError)


# ============================================================================
# Performance
# ============================================================================

def pagespeed_body(score=0.87):
    return {
        "lighthouseResult": {
            "categories": {"performance": {"score": score}},
            "audits": {
                "first-contentful-paint": {"displayValue": "1.2 s", "numericValue": 1200.5},
                "largest-contentful-paint": {"displayValue": "2.5 s", "numericValue": 2500},
                "interactive": {"displayValue": "3.8 s", "numericValue": 3800},
                "cumulative-layout-shift": {"displayValue": "0.02", "numericValue": 0.02},
                "speed-index": {"displayValue": "2.1 s", "numericValue": 2100},
                "total-blocking-time": {"displayValue": "120 ms", "numericValue": 120},
            },
        }
    }


class TestPerformanceScorer:
    async def test_scores_page(self, settings):
        seen = []
        scorer = PerformanceScorer(settings, transport=json_transport(200, pagespeed_body(), seen))

        payload = await scorer.score(TARGET_URL, "mobile")

        assert seen[0].url.params["strategy"] == "mobile"
        assert seen[0].url.params["url"] == TARGET_URL
        assert payload.score == 87
        assert payload.fcp.display_value == "1.2 s"
        assert payload.cls.numeric_value == 0.02
        assert payload.tbt.display_value == "120 ms"

    async def test_missing_audits_use_placeholders(self, settings):
        body = {"lighthouseResult": {"categories": {"performance": {"score": 0.5}}, "audits": {}}}
        scorer = PerformanceScorer(settings, transport=json_transport(200, body))

        payload = await scorer.score(TARGET_URL)

        assert payload.score == 50
        assert payload.lcp.display_value == "N/A"
        assert payload.cls.display_value == "0"
        assert payload.cls.numeric_value == 0

    async def test_rate_limit_status(self, settings):
        scorer = PerformanceScorer(settings, transport=json_transport(429, {}))

        with pytest.raises(RateLimitError):
            await scorer.score(TARGET_URL)

    async def test_api_error_body(self, settings):
        body = {"error": {"code": 400, "message": "Lighthouse returned error: FAILED_DOCUMENT_REQUEST"}}
        scorer = PerformanceScorer(settings, transport=json_transport(400, body))

        with pytest.raises(StageError, match="FAILED_DOCUMENT_REQUEST"):
            await scorer.score(TARGET_URL)

    async def test_timeout(self, settings):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        scorer = PerformanceScorer(settings, transport=httpx.MockTransport(handler))

        with pytest.raises(StageError, match="timed out"):
            await scorer.score(TARGET_URL)

    async def test_missing_lighthouse_result(self, settings):
        scorer = PerformanceScorer(settings, transport=json_transport(200, {"kind": "pagespeedonline#result"}))

        with pytest.raises(StageError, match="no Lighthouse result"):
            await scorer.score(TARGET_URL)


# ============================================================================
# Insights
# ============================================================================

def completion(text):
    return SimpleNamespace(
        usage=SimpleNamespace(prompt_tokens=900, completion_tokens=300, total_tokens=1200),
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
    )


def fake_openai_client(**create_kwargs):
    create = AsyncMock(**create_kwargs)
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create))), create


class TestParseInsightResponse:
    def test_plain_json(self):
        insights = parse_insight_response(json.dumps(INSIGHT_JSON))

        assert insights.overall_score == 68
        assert insights.is_fallback is False
        assert [o.priority for o in insights.opportunities] == [5, 2]

    def test_fenced_json(self):
        text = "```json\n" + json.dumps(INSIGHT_JSON) + "\n```"
        assert parse_insight_response(text).score_rationale == "Good stack, slow mobile experience."

    def test_model_cannot_claim_fallback(self):
        data = {**INSIGHT_JSON, "is_fallback": True, "note": "hi"}
        insights = parse_insight_response(json.dumps(data))
        assert insights.is_fallback is False
        assert insights.note is None

    def test_invalid_json(self):
        with pytest.raises(StageError, match="Failed to process the AI response"):
            parse_insight_response("Sure! Here is your analysis: {")

    def test_schema_mismatch(self):
        with pytest.raises(StageError, match="schema"):
            parse_insight_response(json.dumps({**INSIGHT_JSON, "overall_score": 140}))

    def test_empty(self):
        with pytest.raises(StageError):
            parse_insight_response("   ")


class TestInsightGenerator:
    def test_prompt_carries_the_collected_data(self):
        prompt = build_insight_prompt(make_content(), make_technologies().technologies, make_performance())

        assert TARGET_URL in prompt
        assert "Shopify (ecommerce)" in prompt
        assert "72/100" in prompt
        assert "overall_score" in prompt

    async def test_generate(self, settings):
        client, create = fake_openai_client(return_value=completion(json.dumps(INSIGHT_JSON)))
        generator = InsightGenerator(settings, client=client)

        insights = await generator.generate(make_content(), [], make_performance())

        assert insights.overall_score == 68
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == settings.INSIGHT_MODEL
        assert kwargs["response_format"] == {"type": "json_object"}

    async def test_rate_limit_is_translated(self, settings):
        request = httpx.Request("POST", "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions")
        error = openai.RateLimitError(
            "RESOURCE_EXHAUSTED", response=httpx.Response(429, request=request), body=None
        )
        client, _ = fake_openai_client(side_effect=error)

        with pytest.raises(RateLimitError):
            await InsightGenerator(settings, client=client).generate(make_content(), [], make_performance())

    async def test_no_choices(self, settings):
        client, _ = fake_openai_client(return_value=SimpleNamespace(usage=None, choices=[]))

        with pytest.raises(StageError, match="Empty response"):
            await InsightGenerator(settings, client=client).generate(make_content(), [], make_performance())
