"""Deterministic pattern matcher for Sui Move packages.

Runs every rule in :mod:`suiguard.analyzer.move.patterns` against every
public function, grouped by module. Signature hits are reported as
``definite``; bytecode and combined hits as ``likely``. Modules are
independent, so they can be checked on a thread pool; the merged result
is the same as a sequential run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor

from suiguard.analyzer.move.patterns import (
    STATIC_PATTERN_IDS,
    STATIC_PATTERNS,
    DetectorMatch,
    PatternDefinition,
)
from suiguard.core.types import (
    FindingConfidence,
    PublicFunction,
    Severity,
    StaticAnalysisResult,
    StaticFinding,
)

logger = logging.getLogger(__name__)

_CONTEXT_CHARS = 50


# ── Pattern check ────────────────────────────────────────────────────────────


def check_pattern(
    pattern: PatternDefinition,
    module_code: str,
    func: PublicFunction,
) -> tuple[DetectorMatch, FindingConfidence]:
    """Run one rule's detectors against a function.

    Returns the definite match when the signature detector fired,
    otherwise the first match in detector order. A miss comes back as
    ``(NO_MATCH, POSSIBLE)``.
    """
    matches: list[tuple[DetectorMatch, FindingConfidence]] = []

    if pattern.signature_check is not None:
        hit = pattern.signature_check(func)
        if hit.matched:
            return hit, FindingConfidence.DEFINITE

    if pattern.bytecode_patterns and module_code:
        for regex in pattern.bytecode_patterns:
            m = regex.search(module_code)
            if m:
                start = max(0, m.start() - _CONTEXT_CHARS)
                end = min(len(module_code), m.end() + _CONTEXT_CHARS)
                context = module_code[start:end].strip()
                matches.append((
                    DetectorMatch(
                        True,
                        f'Bytecode pattern matched: "{m.group(0)}" in context: ...{context}...',
                    ),
                    FindingConfidence.LIKELY,
                ))
                break

    if pattern.combined_check is not None:
        hit = pattern.combined_check(module_code, func)
        if hit.matched:
            matches.append((hit, FindingConfidence.LIKELY))

    if matches:
        return matches[0]
    return DetectorMatch(False), FindingConfidence.POSSIBLE


def _analyze_module(
    module_name: str,
    module_code: str,
    functions: list[PublicFunction],
) -> list[StaticFinding]:
    findings: list[StaticFinding] = []
    for func in functions:
        for pattern in STATIC_PATTERNS:
            hit, confidence = check_pattern(pattern, module_code, func)
            if not hit.matched:
                continue
            findings.append(StaticFinding(
                pattern_id=pattern.id,
                severity=pattern.severity,
                function_name=func.name,
                module_name=module_name,
                evidence=hit.evidence,
                description=pattern.description,
                confidence=confidence,
            ))
    return findings


def _dedupe(findings: Iterable[StaticFinding]) -> list[StaticFinding]:
    seen: set[tuple[str, str, str]] = set()
    unique: list[StaticFinding] = []
    for f in findings:
        if f.key in seen:
            continue
        seen.add(f.key)
        unique.append(f)
    return unique


# ── Entry point ──────────────────────────────────────────────────────────────


def run_static_analysis(
    module_code: Mapping[str, str],
    functions: Iterable[PublicFunction],
    max_workers: int = 1,
) -> StaticAnalysisResult:
    """Check every rule against every public function.

    Args:
        module_code: Module name to disassembled text. Modules without an
            entry are matched against an empty string.
        functions: Public functions of the package.
        max_workers: Thread count for the per-module fan-out.

    Returns:
        Findings unique per (pattern, module, function), ordered Critical
        first; ties keep discovery order.
    """
    start = time.perf_counter()

    by_module: dict[str, list[PublicFunction]] = {}
    for func in functions:
        by_module.setdefault(func.module, []).append(func)

    modules = list(by_module)
    if max_workers > 1 and len(modules) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            per_module = list(pool.map(
                lambda m: _analyze_module(m, module_code.get(m, ""), by_module[m]),
                modules,
            ))
    else:
        per_module = [
            _analyze_module(m, module_code.get(m, ""), by_module[m]) for m in modules
        ]

    findings = _dedupe(f for batch in per_module for f in batch)
    findings.sort(key=lambda f: f.severity.rank)

    elapsed_ms = (time.perf_counter() - start) * 1000.0
    logger.info(
        "Static analysis: %d finding(s) across %d module(s) in %.1fms",
        len(findings), len(modules), elapsed_ms,
        extra={"findings_count": len(findings), "duration_ms": round(elapsed_ms, 2)},
    )

    return StaticAnalysisResult(
        findings=findings,
        analyzed_modules=modules,
        patterns_checked=list(STATIC_PATTERN_IDS),
        analysis_time_ms=elapsed_ms,
    )


# ── Reporting helpers ────────────────────────────────────────────────────────


def format_static_findings_for_prompt(result: StaticAnalysisResult) -> str:
    """Render findings as the plain-text block handed to the model."""
    if not result.findings:
        return "No static patterns detected."

    lines = [f"Static Analysis detected {len(result.findings)} pattern(s):", ""]
    for f in result.findings:
        lines.append(f"- [{f.severity.value}] {f.pattern_id}")
        lines.append(f"  Function: {f.module_name}::{f.function_name}")
        lines.append(f"  Evidence: {f.evidence}")
        lines.append(f"  Confidence: {f.confidence.value}")
        lines.append("")
    return "\n".join(lines)


def count_findings_by_severity(result: StaticAnalysisResult) -> dict[str, int]:
    """Count findings per severity label; every label is present."""
    counts = {sev.value: 0 for sev in Severity}
    for f in result.findings:
        counts[f.severity.value] += 1
    return counts
