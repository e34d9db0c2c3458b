"""Tests for suiguard.verifier.confidence — the confidence engine."""

from __future__ import annotations

import logging

import pytest

from suiguard.core.metrics import MetricsCollector
from suiguard.core.types import (
    AnalysisQuality,
    ConfidenceLevel,
    LimitationSeverity,
    LimitationType,
)
from suiguard.verifier.confidence import (
    MAX_WIDTH,
    MIN_WIDTH,
    RECOMMEND_HIGH,
    RECOMMEND_LOW,
    RECOMMEND_MEDIUM,
    RECOMMEND_TRUNCATION,
    RECOMMEND_VALIDATION,
    calculate_confidence,
    calculate_interval,
    calculate_quality,
    format_confidence_for_response,
    identify_limitations,
    interval_width,
)


def _collector(**fields) -> MetricsCollector:
    c = MetricsCollector()
    for name, value in fields.items():
        setattr(c, name, value)
    return c


@pytest.fixture
def reliable_collector() -> MetricsCollector:
    """Everything validated, static and model findings agree."""
    return _collector(
        total_modules=2, analyzed_modules=2,
        total_functions=4, analyzed_functions=4,
        static_analysis_ran=True, static_findings_count=2,
        cross_module_ran=True, capabilities_found=1,
        llm_findings_count=2, validated_count=2,
    )


class TestCalculateConfidence:

    def test_empty_run_is_low(self, collector):
        metrics = calculate_confidence(collector, 50)
        assert metrics.confidence_level == ConfidenceLevel.LOW
        interval = metrics.confidence_interval
        assert (interval.lower, interval.upper, interval.width) == (31, 69, 38)
        assert metrics.recommendations == [RECOMMEND_LOW, RECOMMEND_VALIDATION]

    def test_summary_logged(self, collector, caplog):
        with caplog.at_level(logging.INFO, logger="suiguard.verifier.confidence"):
            calculate_confidence(collector, 50)
        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith("Confidence: low [31-69]") for m in messages)

    def test_heavily_truncated_run_clamps_width(self):
        c = _collector(
            total_modules=3, analyzed_modules=3, total_functions=3,
            truncated_modules=["a", "b", "c"],
        )
        metrics = calculate_confidence(c, 60)
        interval = metrics.confidence_interval
        assert (interval.lower, interval.upper, interval.width) == (35, 85, 50)
        assert metrics.confidence_level == ConfidenceLevel.LOW
        assert metrics.recommendations == [
            RECOMMEND_LOW, RECOMMEND_TRUNCATION, RECOMMEND_VALIDATION,
        ]

    def test_reliable_run_is_high(self, reliable_collector):
        metrics = calculate_confidence(reliable_collector, 50)
        interval = metrics.confidence_interval
        assert (interval.lower, interval.upper, interval.width) == (45, 55, 10)
        assert metrics.confidence_level == ConfidenceLevel.HIGH
        assert metrics.limitations == []
        assert metrics.recommendations == [RECOMMEND_HIGH]

    def test_medium_run(self):
        c = _collector(
            total_modules=1, analyzed_modules=1, total_functions=2,
            validated_count=1, unvalidated_count=1,
        )
        metrics = calculate_confidence(c, 40)
        assert metrics.confidence_interval.width == 16
        assert metrics.confidence_level == ConfidenceLevel.MEDIUM
        assert metrics.recommendations == [RECOMMEND_MEDIUM]

    def test_half_points_round_up(self):
        c = _collector(
            total_modules=1, analyzed_modules=1, total_functions=1,
            validated_count=4, truncated_modules=["big"],
        )
        interval = calculate_confidence(c, 50).confidence_interval
        assert (interval.lower, interval.upper, interval.width) == (40, 61, 21)

    @pytest.mark.parametrize(
        "risk, expected",
        [(98, (93, 100, 7)), (2, (0, 7, 7)), (150, (95, 100, 5)), (-10, (0, 5, 5))],
    )
    def test_interval_clipped_to_range(self, reliable_collector, risk, expected):
        interval = calculate_confidence(reliable_collector, risk).confidence_interval
        assert (interval.lower, interval.upper, interval.width) == expected

    def test_high_requires_validation_rate(self, reliable_collector):
        reliable_collector.validated_count = 2
        reliable_collector.unvalidated_count = 1
        metrics = calculate_confidence(reliable_collector, 50)
        # 67% validated: narrow interval but not enough for high
        assert metrics.confidence_level == ConfidenceLevel.MEDIUM


class TestQuality:

    def test_empty_collector(self, collector):
        q = calculate_quality(collector)
        assert q.validation_rate == 0
        assert q.static_analysis_coverage == 0
        assert q.cross_module_coverage == 0
        assert q.llm_agreement_rate == 50
        assert not q.truncation_occurred

    def test_cross_module_coverage(self):
        assert calculate_quality(_collector(cross_module_ran=True)).cross_module_coverage == 50
        assert calculate_quality(
            _collector(cross_module_ran=True, capabilities_found=3),
        ).cross_module_coverage == 100

    def test_static_coverage_capped(self):
        q = calculate_quality(_collector(total_functions=2, static_findings_count=9))
        assert q.static_analysis_coverage == 100

    def test_agreement_ratio(self):
        q = calculate_quality(_collector(static_findings_count=3, llm_findings_count=2))
        assert q.llm_agreement_rate == 67

    def test_validation_rate_rounds_half_up(self):
        q = calculate_quality(_collector(validated_count=1, unvalidated_count=7))
        assert q.validation_rate == 13


class TestLimitations:

    def _limits(self, collector):
        return identify_limitations(collector, calculate_quality(collector))

    def test_truncation_severity(self):
        moderate = self._limits(_collector(validated_count=1, truncated_modules=["a", "b"]))
        assert moderate[0].type == LimitationType.TRUNCATION
        assert moderate[0].severity == LimitationSeverity.MODERATE
        assert moderate[0].description == "2 module(s) were truncated due to size limits"
        assert moderate[0].affected_area == "a, b"

    def test_validation_moderate_band(self):
        limits = self._limits(_collector(validated_count=2, unvalidated_count=3))
        assert [(lim.type, lim.severity) for lim in limits] == [
            (LimitationType.VALIDATION, LimitationSeverity.MODERATE),
        ]
        assert limits[0].description == "Only 40% of findings could be validated against bytecode"

    def test_every_kind(self):
        c = _collector(
            total_modules=3, analyzed_modules=2,
            total_functions=10, static_findings_count=1,
            total_bytecode_size=600_000,
            llm_errors=["timeout", "bad json"],
            validated_count=1,
        )
        descriptions = [lim.description for lim in self._limits(c)]
        assert descriptions == [
            "Only 2/3 modules were analyzed",
            "Large contract size may affect analysis depth",
            "2 LLM error(s) occurred during analysis",
            "Low static analysis coverage - contract may use uncommon patterns",
        ]

    def test_small_packages_skip_coverage_note(self):
        c = _collector(total_functions=5, validated_count=1)
        assert self._limits(c) == []


class TestIntervalWidth:

    def test_bounds(self):
        narrow = AnalysisQuality(validation_rate=100, llm_agreement_rate=100)
        assert interval_width(narrow, []) == MIN_WIDTH
        wide = AnalysisQuality(
            validation_rate=0, llm_agreement_rate=0,
            truncation_occurred=True, truncated_modules=["a", "b", "c", "d"],
        )
        assert interval_width(wide, []) == MAX_WIDTH

    def test_interval_width_matches_bounds(self):
        quality = AnalysisQuality(validation_rate=60, llm_agreement_rate=50)
        interval = calculate_interval(33.3, quality, [])
        assert interval.width == interval.upper - interval.lower


class TestFormatting:

    def test_summary(self, collector):
        metrics = calculate_confidence(collector, 50)
        summary = format_confidence_for_response(metrics)
        assert summary.confidence_interval == {"lower": 31, "upper": 69}
        assert summary.confidence_level == ConfidenceLevel.LOW
        assert summary.limitations == ["Only 0% of findings could be validated against bytecode"]
        assert summary.analysis_quality == metrics.analysis_quality
