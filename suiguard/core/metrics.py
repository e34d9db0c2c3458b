"""Run-scoped metrics collector.

The collector is the only mutable object in the analysis core. One is
created per assessment run, written stage by stage by the orchestrator,
read once by the confidence engine and then dropped. It must not be
shared between concurrent workers; workers return pure results and the
owner folds them in afterwards.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from suiguard.core.types import (
    CrossModuleAnalysisResult,
    PublicFunction,
    StaticAnalysisResult,
    ValidationResult,
)


@dataclass
class MetricsCollector:
    """Counters gathered while a package is analysed."""

    # Timing
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None

    # Modules
    total_modules: int = 0
    analyzed_modules: int = 0
    truncated_modules: list[str] = field(default_factory=list)

    # Functions
    total_functions: int = 0
    analyzed_functions: int = 0

    # Bytecode
    total_bytecode_size: int = 0
    analyzed_bytecode_size: int = 0

    # Static analysis
    static_findings_count: int = 0
    static_analysis_ran: bool = False

    # Cross-module
    cross_module_ran: bool = False
    capabilities_found: int = 0
    flows_found: int = 0
    cross_module_risks: int = 0

    # Model
    llm_findings_count: int = 0
    llm_errors: list[str] = field(default_factory=list)

    # Validation
    validated_count: int = 0
    unvalidated_count: int = 0
    invalid_count: int = 0
    avg_validation_score: float = 0.0

    # ── Stage updates ────────────────────────────────────────────────────

    def update_from_bytecode(
        self,
        module_code: Mapping[str, str],
        functions: Iterable[PublicFunction],
        analyzed_modules: Iterable[str] | None = None,
    ) -> None:
        """Record package size.

        ``analyzed_modules`` names the modules that made it into the
        analysed view; all modules count as analysed when omitted.
        """
        funcs = list(functions)
        self.total_modules = len(module_code)
        self.total_functions = len(funcs)
        self.analyzed_functions = len(funcs)
        self.total_bytecode_size = sum(len(code) for code in module_code.values())

        if analyzed_modules is None:
            self.analyzed_modules = self.total_modules
            self.analyzed_bytecode_size = self.total_bytecode_size
        else:
            kept = [m for m in dict.fromkeys(analyzed_modules) if m in module_code]
            self.analyzed_modules = len(kept)
            self.analyzed_bytecode_size = sum(len(module_code[m]) for m in kept)

    def update_from_static_analysis(self, result: StaticAnalysisResult) -> None:
        self.static_analysis_ran = True
        self.static_findings_count = len(result.findings)

    def update_from_cross_module(self, result: CrossModuleAnalysisResult) -> None:
        self.cross_module_ran = True
        self.capabilities_found = len(result.capabilities)
        self.flows_found = len(result.flows)
        self.cross_module_risks = len(result.risks)

    def update_from_validation(self, result: ValidationResult) -> None:
        summary = result.validation_summary
        self.validated_count = summary.validated
        self.unvalidated_count = summary.unvalidated
        self.invalid_count = summary.invalid
        self.avg_validation_score = summary.avg_validation_score

    def update_from_llm(self, findings_count: int, errors: Iterable[str] = ()) -> None:
        self.llm_findings_count = findings_count
        self.llm_errors = list(errors)

    def mark_truncation(self, module_name: str) -> None:
        if module_name not in self.truncated_modules:
            self.truncated_modules.append(module_name)

    def finalize(self) -> None:
        self.end_time = time.time()

    @property
    def duration_ms(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return (end - self.start_time) * 1000.0
