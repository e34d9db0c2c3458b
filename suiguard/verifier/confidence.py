"""Confidence engine: how far to trust a run's risk score.

Turns the run's :class:`~suiguard.core.metrics.MetricsCollector` counters
into quality percentages, a list of analysis limitations, a bounded
interval around the risk score and a high/medium/low confidence level.
Every ratio is guarded against empty runs, so a collector that saw
nothing still yields a valid (low-confidence) result.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from suiguard.core.metrics import MetricsCollector
from suiguard.core.numeric import clamp, round_half_up, safe_ratio
from suiguard.core.types import (
    AnalysisLimitation,
    AnalysisQuality,
    ConfidenceInterval,
    ConfidenceLevel,
    ConfidenceMetrics,
    ConfidenceSummary,
    LimitationSeverity,
    LimitationType,
)

logger = logging.getLogger(__name__)

BASE_WIDTH = 20
MIN_WIDTH = 10
MAX_WIDTH = 50
LARGE_BYTECODE_CHARS = 500_000

_LIMITATION_WIDTH = {
    LimitationSeverity.SIGNIFICANT: 8,
    LimitationSeverity.MODERATE: 4,
    LimitationSeverity.MINOR: 2,
}

RECOMMEND_LOW = "Manual security review strongly recommended due to analysis limitations"
RECOMMEND_MEDIUM = "Consider manual review for critical functionality"
RECOMMEND_TRUNCATION = "Large modules were truncated - review full bytecode manually"
RECOMMEND_VALIDATION = (
    "Many findings could not be validated - verify against source code if available"
)
RECOMMEND_HIGH = "Analysis has high confidence - automated findings are reliable"


# ── Quality ──────────────────────────────────────────────────────────────────


def calculate_quality(collector: MetricsCollector) -> AnalysisQuality:
    graded = collector.validated_count + collector.unvalidated_count + collector.invalid_count
    validation_rate = safe_ratio(collector.validated_count, graded) * 100

    static_coverage = min(
        100.0, safe_ratio(collector.static_findings_count, collector.total_functions) * 100,
    )

    if not collector.cross_module_ran:
        cross_coverage = 0
    else:
        cross_coverage = 100 if collector.capabilities_found > 0 else 50

    s, m = collector.static_findings_count, collector.llm_findings_count
    agreement = min(100.0, min(s, m) / max(s, m) * 100) if s > 0 and m > 0 else 50.0

    return AnalysisQuality(
        modules_analyzed=collector.analyzed_modules,
        modules_total=collector.total_modules,
        functions_analyzed=collector.analyzed_functions,
        functions_total=collector.total_functions,
        truncation_occurred=bool(collector.truncated_modules),
        truncated_modules=list(collector.truncated_modules),
        validation_rate=round_half_up(validation_rate),
        static_analysis_coverage=round_half_up(static_coverage),
        cross_module_coverage=cross_coverage,
        llm_agreement_rate=round_half_up(agreement),
    )


# ── Limitations ──────────────────────────────────────────────────────────────


def identify_limitations(
    collector: MetricsCollector, quality: AnalysisQuality,
) -> list[AnalysisLimitation]:
    limitations: list[AnalysisLimitation] = []

    if quality.truncation_occurred:
        limitations.append(AnalysisLimitation(
            type=LimitationType.TRUNCATION,
            severity=(
                LimitationSeverity.SIGNIFICANT
                if len(quality.truncated_modules) > 2
                else LimitationSeverity.MODERATE
            ),
            description=(
                f"{len(quality.truncated_modules)} module(s) were truncated due to size limits"
            ),
            affected_area=", ".join(quality.truncated_modules),
        ))

    if quality.validation_rate < 50:
        limitations.append(AnalysisLimitation(
            type=LimitationType.VALIDATION,
            severity=(
                LimitationSeverity.SIGNIFICANT
                if quality.validation_rate < 30
                else LimitationSeverity.MODERATE
            ),
            description=(
                f"Only {quality.validation_rate}% of findings could be validated against bytecode"
            ),
        ))

    if quality.modules_analyzed < quality.modules_total:
        limitations.append(AnalysisLimitation(
            type=LimitationType.COVERAGE,
            severity=LimitationSeverity.MODERATE,
            description=(
                f"Only {quality.modules_analyzed}/{quality.modules_total} modules were analyzed"
            ),
        ))

    if collector.total_bytecode_size > LARGE_BYTECODE_CHARS:
        limitations.append(AnalysisLimitation(
            type=LimitationType.COMPLEXITY,
            severity=LimitationSeverity.MINOR,
            description="Large contract size may affect analysis depth",
        ))

    if collector.llm_errors:
        limitations.append(AnalysisLimitation(
            type=LimitationType.TIMEOUT,
            severity=LimitationSeverity.MODERATE,
            description=f"{len(collector.llm_errors)} LLM error(s) occurred during analysis",
        ))

    if quality.static_analysis_coverage < 20 and collector.total_functions > 5:
        limitations.append(AnalysisLimitation(
            type=LimitationType.COVERAGE,
            severity=LimitationSeverity.MINOR,
            description="Low static analysis coverage - contract may use uncommon patterns",
        ))

    return limitations


# ── Interval and level ───────────────────────────────────────────────────────


def interval_width(
    quality: AnalysisQuality, limitations: Sequence[AnalysisLimitation],
) -> int:
    """Interval width before it is centred on the score, in ``[10, 50]``."""
    width = BASE_WIDTH

    if quality.validation_rate >= 80:
        width -= 8
    elif quality.validation_rate >= 50:
        width -= 4
    elif quality.validation_rate < 30:
        width += 10

    if quality.truncation_occurred:
        width += 5 * len(quality.truncated_modules)

    for limitation in limitations:
        width += _LIMITATION_WIDTH[limitation.severity]

    if quality.llm_agreement_rate >= 70:
        width -= 5
    elif quality.llm_agreement_rate < 40:
        width += 5

    return int(clamp(width, MIN_WIDTH, MAX_WIDTH))


def calculate_interval(
    risk_score: float,
    quality: AnalysisQuality,
    limitations: Sequence[AnalysisLimitation],
) -> ConfidenceInterval:
    width = interval_width(quality, limitations)
    score = clamp(risk_score)
    lower = max(0, round_half_up(score - width / 2))
    upper = min(100, round_half_up(score + width / 2))
    return ConfidenceInterval(lower=lower, upper=upper, width=upper - lower)


def determine_confidence_level(
    interval: ConfidenceInterval, quality: AnalysisQuality,
) -> ConfidenceLevel:
    if interval.width <= 15 and quality.validation_rate >= 70:
        return ConfidenceLevel.HIGH
    if interval.width >= 30 or quality.validation_rate < 40:
        return ConfidenceLevel.LOW
    return ConfidenceLevel.MEDIUM


def generate_recommendations(
    level: ConfidenceLevel, limitations: Sequence[AnalysisLimitation],
) -> list[str]:
    recommendations: list[str] = []

    if level == ConfidenceLevel.LOW:
        recommendations.append(RECOMMEND_LOW)
    elif level == ConfidenceLevel.MEDIUM:
        recommendations.append(RECOMMEND_MEDIUM)

    for limitation in limitations:
        if (
            limitation.type == LimitationType.TRUNCATION
            and limitation.severity == LimitationSeverity.SIGNIFICANT
        ):
            recommendations.append(RECOMMEND_TRUNCATION)
        if (
            limitation.type == LimitationType.VALIDATION
            and limitation.severity != LimitationSeverity.MINOR
        ):
            recommendations.append(RECOMMEND_VALIDATION)

    if level == ConfidenceLevel.HIGH and not recommendations:
        recommendations.append(RECOMMEND_HIGH)

    return recommendations


# ── Entry points ─────────────────────────────────────────────────────────────


def calculate_confidence(collector: MetricsCollector, risk_score: float) -> ConfidenceMetrics:
    """Confidence metrics for *risk_score* given what the run observed."""
    quality = calculate_quality(collector)
    limitations = identify_limitations(collector, quality)
    interval = calculate_interval(risk_score, quality, limitations)
    level = determine_confidence_level(interval, quality)
    logger.info(
        "Confidence: %s [%d-%d], %d limitation(s)",
        level.value, interval.lower, interval.upper, len(limitations),
    )
    return ConfidenceMetrics(
        confidence_interval=interval,
        confidence_level=level,
        analysis_quality=quality,
        limitations=limitations,
        recommendations=generate_recommendations(level, limitations),
    )


def format_confidence_for_response(metrics: ConfidenceMetrics) -> ConfidenceSummary:
    """Trim metrics to interval bounds and limitation descriptions."""
    return ConfidenceSummary(
        confidence_interval={
            "lower": metrics.confidence_interval.lower,
            "upper": metrics.confidence_interval.upper,
        },
        confidence_level=metrics.confidence_level,
        analysis_quality=metrics.analysis_quality,
        limitations=[lim.description for lim in metrics.limitations],
    )
