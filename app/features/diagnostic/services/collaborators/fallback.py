"""
Rule-based insights used when the AI model is unavailable.

Built from the performance payload alone; deterministic for a given input.
"""
from app.features.diagnostic.schemas.payloads import InsightPayload, Opportunity, PerformancePayload

STRONG_SCORE = 90
POOR_SCORE = 50
GOOD_CLS = 0.1
POOR_CLS = 0.25


def build_fallback_insights(performance: PerformancePayload, note: str) -> InsightPayload:
    strengths = []
    opportunities = []
    cls = performance.cls.numeric_value

    if performance.score >= STRONG_SCORE:
        strengths.append("Excellent overall performance score.")
    if cls < GOOD_CLS:
        strengths.append("Good visual stability (CLS).")

    if performance.score < POOR_SCORE:
        opportunities.append(Opportunity(
            title="Improve General Performance",
            description="The site is very slow, which severely hurts mobile conversion.",
            impact="high",
            priority=5,
        ))
    if cls > POOR_CLS:
        opportunities.append(Opportunity(
            title="Reduce Layout Shift",
            description=(
                f"Cumulative Layout Shift is {performance.cls.display_value}; content moving "
                "during load causes misclicks and erodes trust."
            ),
            impact="medium",
            priority=4,
        ))

    return InsightPayload(
        strengths=strengths or ["Site is reachable"],
        opportunities=opportunities or [Opportunity(
            title="Manual Review Needed",
            description="Detailed automatic recommendations could not be generated right now.",
            impact="medium",
            priority=3,
        )],
        strategic_insights=["Monitor your Core Web Vitals monthly."],
        overall_score=performance.score,
        score_rationale="Score based purely on performance metrics because the detailed analysis failed.",
        note=note,
        is_fallback=True,
    )
