"""Post-model finding validation.

Cross-checks each model-proposed finding against the package's own
ground truth (disassembled text, public function table, pattern
knowledge base) and assigns a 0-100 trust score. Findings scoring below
40 are moved to ``removed_findings``; everything else is kept with a
``validated`` or ``unvalidated`` status.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal

from suiguard.analyzer.move.patterns import (
    KNOWN_PATTERN_FORMATS,
    KNOWN_PATTERN_IDS,
    PATTERN_SEVERITY_MAP,
)
from suiguard.core.numeric import clamp, round_half_up
from suiguard.core.types import (
    AnalyzerResponse,
    ModelFinding,
    PublicFunction,
    Severity,
    ValidatedFinding,
    ValidationResult,
    ValidationStatus,
    ValidationSummary,
)

logger = logging.getLogger(__name__)

# ── Scoring constants ────────────────────────────────────────────────────────

VALIDATED_THRESHOLD = 70
UNVALIDATED_THRESHOLD = 40

PENALTY_UNKNOWN_PATTERN = 30
PENALTY_UNKNOWN_FUNCTION = 25
PENALTY_EVIDENCE_NOT_FOUND = 20
PENALTY_NO_EVIDENCE = 10
PENALTY_SEVERITY_MISMATCH = 15
PENALTY_HEDGING = 5
PENALTY_ROUND_LINE_NUMBER = 10
PENALTY_PROSE_EVIDENCE = 15
PENALTY_WEAK_CRITICAL = 10

PARTIAL_MATCH_RATIO = 0.6

HEDGING_PHRASES: tuple[str, ...] = (
    "could potentially",
    "might be able to",
    "appears to allow",
    "seems like",
    "possibly",
)

SEVERITY_KEYWORDS: Mapping[Severity, tuple[str, ...]] = {
    Severity.CRITICAL: ("drain", "steal", "unlimited", "arbitrary", "all funds", "rug pull"),
    Severity.HIGH: ("mint", "pause", "freeze", "manipulate", "bypass"),
    Severity.MEDIUM: ("oracle", "timestamp", "flash loan", "reentrancy"),
    Severity.LOW: ("overflow", "dos", "event", "gas"),
}

_ROUND_LINE_RE = re.compile(r"Line \d{2}00:", re.IGNORECASE)
_CODE_PUNCT_RE = re.compile(r"[:()\[\]{}]")
_EDGE_QUOTE_RE = re.compile(r"^[\"']|[\"']\Z")
_CALL_RE = re.compile(r"\w+::\w+")
_FIELD_RE = re.compile(r"\w+\.\w+")
_OPCODE_RE = re.compile(
    r"(?:MutBorrow|ImmBorrow|MoveLoc|CopyLoc|StLoc|Call|Ret|WriteRef|ReadRef|Pack|Unpack)\w*"
)


# ── Context ──────────────────────────────────────────────────────────────────


@dataclass
class ValidationContext:
    """Ground truth a run validates model findings against."""
    module_code: Mapping[str, str]
    functions: Sequence[PublicFunction] = field(default_factory=list)
    known_pattern_ids: Sequence[str] = KNOWN_PATTERN_IDS
    pattern_severities: Mapping[str, Severity] = field(
        default_factory=lambda: dict(PATTERN_SEVERITY_MAP),
    )


@dataclass
class EvidenceMatch:
    found: bool
    quality: Literal["exact", "partial", "none"] = "none"
    module: str | None = None


# ── Individual checks ────────────────────────────────────────────────────────


def is_pattern_id_valid(pattern_id: str, known_ids: Iterable[str] = KNOWN_PATTERN_IDS) -> bool:
    """Known id, or one of the accepted id shapes."""
    if not pattern_id:
        return False
    if pattern_id in set(known_ids):
        return True
    return any(rx.search(pattern_id) for rx in KNOWN_PATTERN_FORMATS)


def is_function_known(function_name: str, known_functions: Iterable[str]) -> bool:
    """Case-insensitive match, then ``module::fn`` suffix, then substring either way."""
    if not function_name:
        return False
    known = {k.lower() for k in known_functions}
    name = function_name.lower()
    if name in known:
        return True
    if "::" in name and name.rsplit("::", 1)[-1] in known:
        return True
    return any(k and (k in name or name in k) for k in known)


def clean_evidence(snippet: str) -> str:
    text = snippet.replace("\\n", "\n").replace("...", "")
    return _EDGE_QUOTE_RE.sub("", text).strip()


def extract_key_parts(evidence: str) -> list[str]:
    """Calls (``a::b``), field accesses (``a.b``) and bytecode opcodes."""
    parts = _CALL_RE.findall(evidence) + _FIELD_RE.findall(evidence) + _OPCODE_RE.findall(evidence)
    return list(dict.fromkeys(parts))


def match_evidence(snippet: str | None, module_code: Mapping[str, str]) -> EvidenceMatch:
    if not snippet or not snippet.strip():
        return EvidenceMatch(False)

    evidence = clean_evidence(snippet)
    if not evidence:
        return EvidenceMatch(False)

    all_code = "\n".join(module_code.values())
    if evidence in all_code:
        for module_name, code in module_code.items():
            if evidence in code:
                return EvidenceMatch(True, "exact", module_name)
        return EvidenceMatch(True, "exact")

    parts = extract_key_parts(evidence)
    if parts:
        hits = sum(1 for p in parts if p in all_code)
        if hits >= len(parts) * PARTIAL_MATCH_RATIO:
            return EvidenceMatch(True, "partial")

    return EvidenceMatch(False)


def hallucination_penalty(finding: ModelFinding) -> tuple[int, list[str]]:
    """Cumulative penalty for text that reads like a guess rather than analysis."""
    notes: list[str] = []
    penalty = 0
    reason = (finding.technical_reason or "").lower()

    for phrase in HEDGING_PHRASES:
        count = reason.count(phrase)
        if count:
            notes.append(f'Vague language detected: "{phrase}"')
            penalty += PENALTY_HEDGING * count

    snippet = finding.evidence_code_snippet
    if snippet:
        if _ROUND_LINE_RE.search(snippet):
            notes.append("Suspiciously round line numbers")
            penalty += PENALTY_ROUND_LINE_NUMBER
        if len(snippet) < 20 and not _CODE_PUNCT_RE.search(snippet):
            notes.append("Evidence appears to be description, not code")
            penalty += PENALTY_PROSE_EVIDENCE

    if finding.severity == Severity.CRITICAL and not any(
        kw in reason for kw in SEVERITY_KEYWORDS[Severity.CRITICAL]
    ):
        notes.append("Critical severity without strong risk keywords")
        penalty += PENALTY_WEAK_CRITICAL

    return penalty, notes


def status_for_score(score: int) -> ValidationStatus:
    if score >= VALIDATED_THRESHOLD:
        return ValidationStatus.VALIDATED
    if score >= UNVALIDATED_THRESHOLD:
        return ValidationStatus.UNVALIDATED
    return ValidationStatus.INVALID


# ── Entry point ──────────────────────────────────────────────────────────────


def validate_finding(
    finding: ModelFinding,
    context: ValidationContext,
    known_functions: Iterable[str] | None = None,
) -> ValidatedFinding:
    """Score a single finding against *context*."""
    if known_functions is None:
        known_functions = [f.name for f in context.functions]

    notes: list[str] = []
    score = 100

    if not is_pattern_id_valid(finding.matched_pattern_id, context.known_pattern_ids):
        notes.append(f"Unknown pattern ID: {finding.matched_pattern_id}")
        score -= PENALTY_UNKNOWN_PATTERN

    if not is_function_known(finding.function_name, known_functions):
        notes.append(f"Function not found in public functions: {finding.function_name}")
        score -= PENALTY_UNKNOWN_FUNCTION

    evidence = match_evidence(finding.evidence_code_snippet, context.module_code)
    if evidence.found:
        notes.append(f"Evidence verified in module: {evidence.module or 'unknown'}")
    elif finding.evidence_code_snippet:
        notes.append("Evidence snippet not found in bytecode")
        score -= PENALTY_EVIDENCE_NOT_FOUND
    else:
        notes.append("No evidence provided")
        score -= PENALTY_NO_EVIDENCE

    expected = context.pattern_severities.get(finding.matched_pattern_id)
    if expected is not None and finding.severity != expected:
        notes.append(
            f"Severity mismatch: expected {Severity(expected).value}, got {finding.severity.value}"
        )
        score -= PENALTY_SEVERITY_MISMATCH

    penalty, reasons = hallucination_penalty(finding)
    notes.extend(reasons)
    score -= penalty

    final = int(clamp(score))
    return ValidatedFinding(
        **finding.model_dump(),
        validation_status=status_for_score(final),
        validation_notes=notes,
        validation_score=final,
    )


def validate_findings(
    findings: AnalyzerResponse | Iterable[ModelFinding],
    context: ValidationContext,
) -> ValidationResult:
    """Validate every model finding and split kept from removed ones."""
    items = (
        list(findings.technical_findings)
        if isinstance(findings, AnalyzerResponse)
        else list(findings)
    )
    known_functions = [f.name for f in context.functions]

    kept: list[ValidatedFinding] = []
    removed: list[ValidatedFinding] = []
    for finding in items:
        result = validate_finding(finding, context, known_functions)
        if result.validation_status == ValidationStatus.INVALID:
            removed.append(result)
        else:
            kept.append(result)

    validated = sum(1 for f in kept if f.validation_status == ValidationStatus.VALIDATED)
    unvalidated = len(kept) - validated
    avg = (
        round_half_up(sum(f.validation_score for f in kept) / len(kept)) if kept else 0
    )

    logger.info(
        "Validation: %d validated, %d unvalidated, %d invalid (removed)",
        validated, unvalidated, len(removed),
        extra={"findings_count": len(kept)},
    )

    return ValidationResult(
        validated_findings=kept,
        validation_summary=ValidationSummary(
            total=len(items),
            validated=validated,
            unvalidated=unvalidated,
            invalid=len(removed),
            avg_validation_score=avg,
        ),
        removed_findings=removed,
    )
