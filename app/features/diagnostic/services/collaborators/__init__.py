"""
Stage collaborators

One unit of work per pipeline stage, each behind a narrow async interface:

1. content_collector.py   - headless Chrome render + DOM extraction
2. technology_detector.py - BuiltWith technology lookup
3. performance_scorer.py  - PageSpeed Insights score and Core Web Vitals
4. insight_generator.py   - AI conversion report (fallback.py when it is unusable)

Each one decodes its upstream data into a payload model and raises StageError
(or RateLimitError) on failure.
"""
from dataclasses import dataclass

from app.features.diagnostic.services.collaborators.content_collector import ContentCollector
from app.features.diagnostic.services.collaborators.insight_generator import InsightGenerator
from app.features.diagnostic.services.collaborators.performance_scorer import PerformanceScorer
from app.features.diagnostic.services.collaborators.technology_detector import TechnologyDetector
from app.platform.config import Settings


@dataclass
class Collaborators:
    content: ContentCollector
    technologies: TechnologyDetector
    performance: PerformanceScorer
    insights: InsightGenerator


def build_collaborators(settings: Settings) -> Collaborators:
    """Wire the real collaborators. Credentials must already be validated."""
    settings.require_credentials()
    return Collaborators(
        content=ContentCollector(settings),
        technologies=TechnologyDetector(settings),
        performance=PerformanceScorer(settings),
        insights=InsightGenerator(settings),
    )


__all__ = [
    "Collaborators",
    "ContentCollector",
    "InsightGenerator",
    "PerformanceScorer",
    "TechnologyDetector",
    "build_collaborators",
]
