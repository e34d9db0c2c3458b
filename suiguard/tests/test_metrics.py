"""Tests for suiguard.core.metrics — the run-scoped collector."""

from __future__ import annotations

from suiguard.core.metrics import MetricsCollector
from suiguard.core.types import (
    CapabilityDefinition,
    CrossModuleAnalysisResult,
    StaticAnalysisResult,
    ValidationResult,
    ValidationSummary,
)


class TestMetricsCollector:

    def test_defaults(self, collector):
        assert collector.total_modules == 0
        assert collector.truncated_modules == []
        assert not collector.static_analysis_ran
        assert not collector.cross_module_ran
        assert collector.end_time is None

    def test_bytecode_sizes(self, admin_package):
        module_code, functions = admin_package
        c = MetricsCollector()
        c.update_from_bytecode(module_code, functions)
        assert (c.total_modules, c.analyzed_modules) == (3, 3)
        assert (c.total_functions, c.analyzed_functions) == (3, 3)
        assert c.total_bytecode_size == sum(len(v) for v in module_code.values())
        assert c.analyzed_bytecode_size == c.total_bytecode_size

    def test_partial_analysis(self, admin_package):
        module_code, functions = admin_package
        c = MetricsCollector()
        c.update_from_bytecode(module_code, functions, analyzed_modules=["admin", "admin", "ghost"])
        assert c.analyzed_modules == 1
        assert c.analyzed_bytecode_size == len(module_code["admin"])

    def test_stage_updates(self):
        c = MetricsCollector()
        c.update_from_static_analysis(StaticAnalysisResult())
        c.update_from_cross_module(CrossModuleAnalysisResult(
            capabilities=[CapabilityDefinition(name="AdminCap", module="m", full_type="m::AdminCap")],
        ))
        c.update_from_validation(ValidationResult(
            validation_summary=ValidationSummary(total=4, validated=2, unvalidated=1, invalid=1, avg_validation_score=77),
        ))
        c.update_from_llm(3, ["timeout"])
        assert c.static_analysis_ran and c.static_findings_count == 0
        assert c.cross_module_ran and c.capabilities_found == 1
        assert (c.validated_count, c.unvalidated_count, c.invalid_count) == (2, 1, 1)
        assert c.avg_validation_score == 77
        assert c.llm_findings_count == 3
        assert c.llm_errors == ["timeout"]

    def test_truncation_marked_once(self, collector):
        collector.mark_truncation("vault")
        collector.mark_truncation("vault")
        collector.mark_truncation("pool")
        assert collector.truncated_modules == ["vault", "pool"]

    def test_duration(self, collector):
        collector.start_time = 100.0
        collector.end_time = 100.25
        assert collector.duration_ms == 250.0

    def test_finalize_sets_end_time(self, collector):
        collector.finalize()
        assert collector.end_time is not None
        assert collector.duration_ms >= 0

    def test_collectors_do_not_share_state(self):
        a, b = MetricsCollector(), MetricsCollector()
        a.mark_truncation("x")
        a.llm_errors.append("e")
        assert b.truncated_modules == [] and b.llm_errors == []
