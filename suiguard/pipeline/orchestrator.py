"""Assessment orchestrator: coordinates the deterministic analysis pipeline.

Run flow:
1. SIZE       Record package size; build the truncated model-facing view
2. STATIC     Rule catalog over every public function (full text)
3. CROSS      Capability flow analysis (full text)
4. PROMPT     Render static and cross-module results for the model
5. VALIDATE   Cross-check model findings, when supplied
6. SCORE      Risk score, risk level and confidence metrics

Steps 1-4 run in :meth:`AssessmentOrchestrator.analyze` and 5-6 in
:meth:`AssessmentOrchestrator.finalize`, so a caller can put the model
call in between. One :class:`MetricsCollector` is owned per run.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from suiguard.analyzer.move.cross_module import (
    format_cross_module_for_prompt,
    risks_to_static_findings,
    run_cross_module_analysis,
)
from suiguard.analyzer.move.static_analyzer import (
    count_findings_by_severity,
    format_static_findings_for_prompt,
    run_static_analysis,
)
from suiguard.core.config import Settings, get_settings
from suiguard.core.logging import RunLogFilter
from suiguard.core.metrics import MetricsCollector
from suiguard.core.numeric import clamp
from suiguard.core.types import (
    AnalyzerResponse,
    AssessmentReport,
    CrossModuleAnalysisResult,
    ModelFinding,
    PackageRiskLevel,
    PublicFunction,
    StaticAnalysisResult,
    StaticFinding,
    ValidationResult,
)
from suiguard.ingestion.bundle import PackageBundle
from suiguard.verifier.confidence import calculate_confidence
from suiguard.verifier.evidence_validator import ValidationContext, validate_findings

logger = logging.getLogger(__name__)

TRUNCATION_SUFFIX = "\n... [MODULE TRUNCATED]"


# ── Model-facing code view ───────────────────────────────────────────────────


@dataclass
class TruncatedCode:
    """Module text as handed to the model."""
    modules: dict[str, str] = field(default_factory=dict)
    truncated_modules: list[str] = field(default_factory=list)
    omitted_modules: list[str] = field(default_factory=list)
    total_chars: int = 0


def truncate_module_code(
    module_code: Mapping[str, str],
    functions: Iterable[PublicFunction],
    max_module_chars: int,
    max_total_chars: int,
) -> TruncatedCode:
    """Cap each module and the whole view, keeping modules with public functions.

    A module over ``max_module_chars`` is cut and suffixed. Once the next
    module would push the view past ``max_total_chars``, it and every
    later candidate are omitted.
    """
    with_public = {f.module for f in functions}
    view = TruncatedCode()
    candidates = [m for m in module_code if m in with_public]

    for i, name in enumerate(candidates):
        code = module_code[name]
        if view.total_chars + len(code) > max_total_chars:
            view.omitted_modules = candidates[i:]
            break
        if len(code) > max_module_chars:
            view.modules[name] = code[:max_module_chars] + TRUNCATION_SUFFIX
            view.truncated_modules.append(name)
            view.total_chars += max_module_chars
        else:
            view.modules[name] = code
            view.total_chars += len(code)

    return view


def get_risk_level(score: float) -> PackageRiskLevel:
    if score >= 70:
        return PackageRiskLevel.CRITICAL
    if score >= 50:
        return PackageRiskLevel.HIGH
    if score >= 30:
        return PackageRiskLevel.MODERATE
    return PackageRiskLevel.LOW


# ── Orchestrator ─────────────────────────────────────────────────────────────


@dataclass
class PreAnalysis:
    """State carried from :meth:`analyze` to :meth:`finalize`."""
    run_id: str
    bundle: PackageBundle
    collector: MetricsCollector
    static_analysis: StaticAnalysisResult
    cross_module: CrossModuleAnalysisResult
    cross_module_findings: list[StaticFinding]
    model_view: TruncatedCode
    prompt_context: str


class AssessmentOrchestrator:
    """Runs one package through the analysis pipeline."""

    def __init__(
        self,
        settings: Settings | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._max_workers = max_workers or self._settings.parallel_workers

    def analyze(self, bundle: PackageBundle, run_id: str | None = None) -> PreAnalysis:
        """Run every stage that does not need the model's output."""
        run_id = run_id or str(uuid.uuid4())
        # handler-level so records propagated from child loggers are stamped
        log_filter = RunLogFilter(run_id=run_id, package_id=bundle.package_id)
        handlers = list(logging.getLogger().handlers)
        for handler in handlers:
            handler.addFilter(log_filter)
        try:
            return self._analyze(bundle, run_id)
        finally:
            for handler in handlers:
                handler.removeFilter(log_filter)

    def _analyze(self, bundle: PackageBundle, run_id: str) -> PreAnalysis:
        collector = MetricsCollector()
        module_code = bundle.modules
        functions = bundle.functions

        # Step 1: Size and model view
        view = truncate_module_code(
            module_code,
            functions,
            max_module_chars=self._settings.max_module_chars,
            max_total_chars=self._settings.max_disassembled_chars,
        )
        collector.update_from_bytecode(
            module_code,
            functions,
            analyzed_modules=[m for m in module_code if m not in view.omitted_modules],
        )
        for name in view.truncated_modules:
            collector.mark_truncation(name)
        if view.truncated_modules or view.omitted_modules:
            logger.info(
                "Model view: %d module(s) truncated, %d omitted (%d chars)",
                len(view.truncated_modules), len(view.omitted_modules), view.total_chars,
            )

        # Step 2: Static patterns
        static_result = run_static_analysis(module_code, functions, self._max_workers)
        collector.update_from_static_analysis(static_result)

        # Step 3: Capability flows
        cross = run_cross_module_analysis(module_code, functions, self._max_workers)
        collector.update_from_cross_module(cross)

        # Step 4: Prompt context
        prompt_context = "\n\n".join([
            format_static_findings_for_prompt(static_result),
            format_cross_module_for_prompt(cross),
        ])

        return PreAnalysis(
            run_id=run_id,
            bundle=bundle,
            collector=collector,
            static_analysis=static_result,
            cross_module=cross,
            cross_module_findings=risks_to_static_findings(cross.risks),
            model_view=view,
            prompt_context=prompt_context,
        )

    def finalize(
        self,
        pre: PreAnalysis,
        model_findings: AnalyzerResponse | Sequence[ModelFinding] | None = None,
        risk_score: float | None = None,
        llm_errors: Iterable[str] = (),
    ) -> AssessmentReport:
        """Validate model output and score the run.

        Without ``model_findings`` the run is scored from ``risk_score``
        alone (default when missing). With them, a run where no finding
        survives validation is scored as having no findings.
        """
        collector = pre.collector
        bundle = pre.bundle

        # Step 5: Validation
        validation: ValidationResult | None = None
        if model_findings is not None:
            validation = validate_findings(
                model_findings,
                ValidationContext(module_code=bundle.modules, functions=bundle.functions),
            )
            collector.update_from_validation(validation)
            collector.update_from_llm(validation.validation_summary.total, llm_errors)
        else:
            collector.update_from_llm(0, llm_errors)

        # Step 6: Scoring
        score = self._resolve_risk_score(risk_score, validation)
        collector.finalize()
        confidence = calculate_confidence(collector, score)
        level = get_risk_level(score)

        logger.info(
            "Assessment %s: risk %.0f (%s), confidence %s [%d-%d]",
            bundle.package_id or pre.run_id[:8], score, level.value,
            confidence.confidence_level.value,
            confidence.confidence_interval.lower, confidence.confidence_interval.upper,
            extra={
                "run_id": pre.run_id,
                "package_id": bundle.package_id,
                "duration_ms": round(collector.duration_ms, 2),
            },
        )

        return AssessmentReport(
            package_id=bundle.package_id,
            risk_score=score,
            risk_level=level,
            static_analysis=pre.static_analysis,
            cross_module=pre.cross_module,
            cross_module_findings=pre.cross_module_findings,
            validation=validation,
            confidence=confidence,
            prompt_context=pre.prompt_context,
            metadata={
                "run_id": pre.run_id,
                "duration_ms": round(collector.duration_ms, 2),
                "dependencies": list(bundle.dependencies),
                "severity_counts": count_findings_by_severity(pre.static_analysis),
                "model_view_chars": pre.model_view.total_chars,
                "truncated_modules": list(pre.model_view.truncated_modules),
                "omitted_modules": list(pre.model_view.omitted_modules),
                "llm_errors": list(collector.llm_errors),
            },
        )

    def run(
        self,
        bundle: PackageBundle,
        model_findings: AnalyzerResponse | Sequence[ModelFinding] | None = None,
        risk_score: float | None = None,
        llm_errors: Iterable[str] = (),
        run_id: str | None = None,
    ) -> AssessmentReport:
        """Analyze and finalize in one call."""
        pre = self.analyze(bundle, run_id=run_id)
        return self.finalize(pre, model_findings, risk_score, llm_errors)

    def _resolve_risk_score(
        self, risk_score: float | None, validation: ValidationResult | None,
    ) -> float:
        if validation is not None and not validation.validated_findings:
            return self._settings.no_findings_risk_score
        if risk_score is None or math.isnan(risk_score):
            return self._settings.default_risk_score
        return float(clamp(risk_score))
