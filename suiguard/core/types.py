"""Shared enums and types used across the analysis core."""

from __future__ import annotations

import enum
import json
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class Severity(str, enum.Enum):
    """Finding severity. Declaration order is the severity order."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        """0 for Critical up to 3 for Low."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[Severity, int] = {sev: i for i, sev in enumerate(Severity)}


class FindingConfidence(str, enum.Enum):
    """How a static finding was produced."""

    DEFINITE = "definite"  # signature predicate
    LIKELY = "likely"      # bytecode text or combined predicate
    POSSIBLE = "possible"


class ParamKind(str, enum.Enum):
    """Shape tag of a normalized Move parameter type."""

    PRIMITIVE = "primitive"
    REFERENCE = "reference"
    STRUCT = "struct"
    VECTOR = "vector"
    TYPE_PARAMETER = "type-parameter"
    UNKNOWN = "unknown"


class UsageType(str, enum.Enum):
    """How a capability shows up in code."""

    PARAMETER = "parameter"
    CREATED = "created"
    TRANSFERRED = "transferred"
    DESTROYED = "destroyed"
    BORROWED_MUT = "borrowed_mut"
    BORROWED_IMM = "borrowed_imm"


class FlowType(str, enum.Enum):
    """Where a capability can end up."""

    INTERNAL = "internal"
    EXTERNAL_TRANSFER = "external_transfer"
    PUBLIC_SHARE = "public_share"


class RiskLevel(str, enum.Enum):
    """Risk attached to a single capability flow."""

    SAFE = "safe"
    RISKY = "risky"
    CRITICAL = "critical"


class ValidationStatus(str, enum.Enum):
    """Outcome of cross-checking a model finding against ground truth."""

    VALIDATED = "validated"
    UNVALIDATED = "unvalidated"
    INVALID = "invalid"


class ConfidenceLevel(str, enum.Enum):
    """Qualitative trust in a run's risk score."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class LimitationType(str, enum.Enum):
    TRUNCATION = "truncation"
    VALIDATION = "validation"
    COVERAGE = "coverage"
    COMPLEXITY = "complexity"
    TIMEOUT = "timeout"


class LimitationSeverity(str, enum.Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class PackageRiskLevel(str, enum.Enum):
    """Bucketed overall package risk."""

    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


# Sentinel flow targets
EXTERNAL_ADDRESS = "external_address"
SHARED_OBJECT = "shared_object"


# ── Contract interface ───────────────────────────────────────────────────────


class Param(BaseModel):
    """A normalized public-function parameter type.

    ``value`` holds the struct identifier (``address::module::Name``) for
    struct shapes, the index for type parameters, or the element type for
    vectors. ``type`` names the referenced shape for references and the
    primitive name for primitives.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: ParamKind
    type: str | None = None
    value: Union[int, str, "Param", None] = None
    mutable: bool | None = None
    type_args: list[str] | None = Field(default=None, alias="typeArgs")

    @property
    def is_reference(self) -> bool:
        return self.kind == ParamKind.REFERENCE

    @property
    def is_mutable_reference(self) -> bool:
        return self.kind == ParamKind.REFERENCE and self.mutable is True

    def signature_text(self) -> str:
        """Compact JSON rendering that signature predicates search in."""
        return json.dumps(
            self.model_dump(mode="json", by_alias=True, exclude_none=True),
            separators=(",", ":"),
        )


Param.model_rebuild()


class PublicFunction(BaseModel):
    """A public entry point of a module."""

    model_config = ConfigDict(frozen=True)

    module: str
    name: str
    params: list[Param] = Field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return f"{self.module}::{self.name}"


# ── Pattern matcher ──────────────────────────────────────────────────────────


class StaticFinding(BaseModel):
    """One rule match; unique per (pattern_id, module_name, function_name)."""

    pattern_id: str
    severity: Severity
    function_name: str
    module_name: str
    evidence: str
    description: str
    confidence: FindingConfidence

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.pattern_id, self.module_name, self.function_name)


class StaticAnalysisResult(BaseModel):
    findings: list[StaticFinding] = Field(default_factory=list)
    analyzed_modules: list[str] = Field(default_factory=list)
    patterns_checked: list[str] = Field(default_factory=list)
    analysis_time_ms: float = 0.0


# ── Capability flow ──────────────────────────────────────────────────────────


class CapabilityDefinition(BaseModel):
    """A privileged object type spotted by naming convention.

    Abilities are inferred from nearby tokens and are only a hint.
    ``has_copy`` and ``has_drop`` are always False.
    """

    name: str
    module: str
    full_type: str
    has_store: bool = False
    has_key: bool = False
    has_copy: bool = False
    has_drop: bool = False


class CapabilityUsage(BaseModel):
    capability: str
    full_type: str
    module: str
    function_name: str
    usage_type: UsageType


class CapabilityFlow(BaseModel):
    """Directed edge: ``to`` is a module name or a sentinel target."""

    capability: str
    full_type: str
    from_module: str
    to: str
    via_function: str
    flow_type: FlowType
    risk_level: RiskLevel


class CrossModuleRisk(BaseModel):
    pattern_id: str
    severity: Severity
    affected_modules: list[str] = Field(default_factory=list)
    source_module: str
    source_function: str
    description: str
    evidence: str


class CrossModuleAnalysisResult(BaseModel):
    capabilities: list[CapabilityDefinition] = Field(default_factory=list)
    usages: list[CapabilityUsage] = Field(default_factory=list)
    flows: list[CapabilityFlow] = Field(default_factory=list)
    risks: list[CrossModuleRisk] = Field(default_factory=list)
    analysis_time_ms: float = 0.0


# ── Evidence validation ──────────────────────────────────────────────────────


class ModelFinding(BaseModel):
    """A finding proposed by the language model."""

    function_name: str = ""
    technical_reason: str = ""
    matched_pattern_id: str = ""
    severity: Severity
    contextual_notes: list[str] | None = None
    evidence_code_snippet: str | None = None


class AnalyzerResponse(BaseModel):
    """The model's findings payload."""

    technical_findings: list[ModelFinding] = Field(default_factory=list)


class ValidatedFinding(ModelFinding):
    validation_status: ValidationStatus
    validation_notes: list[str] = Field(default_factory=list)
    validation_score: int = Field(ge=0, le=100)


class ValidationSummary(BaseModel):
    total: int = 0
    validated: int = 0
    unvalidated: int = 0
    invalid: int = 0
    avg_validation_score: int = 0


class ValidationResult(BaseModel):
    validated_findings: list[ValidatedFinding] = Field(default_factory=list)
    validation_summary: ValidationSummary = Field(default_factory=ValidationSummary)
    removed_findings: list[ValidatedFinding] = Field(default_factory=list)


# ── Confidence ───────────────────────────────────────────────────────────────


class ConfidenceInterval(BaseModel):
    lower: int = Field(ge=0, le=100)
    upper: int = Field(ge=0, le=100)
    width: int = Field(ge=0, le=100)


class AnalysisQuality(BaseModel):
    modules_analyzed: int = 0
    modules_total: int = 0
    functions_analyzed: int = 0
    functions_total: int = 0
    truncation_occurred: bool = False
    truncated_modules: list[str] = Field(default_factory=list)
    validation_rate: int = 0
    static_analysis_coverage: int = 0
    cross_module_coverage: int = 0
    llm_agreement_rate: int = 0


class AnalysisLimitation(BaseModel):
    type: LimitationType
    severity: LimitationSeverity
    description: str
    affected_area: str | None = None


class ConfidenceMetrics(BaseModel):
    confidence_interval: ConfidenceInterval
    confidence_level: ConfidenceLevel
    analysis_quality: AnalysisQuality
    limitations: list[AnalysisLimitation] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ConfidenceSummary(BaseModel):
    """Trimmed confidence view returned to API clients."""

    confidence_interval: dict[str, int]
    confidence_level: ConfidenceLevel
    analysis_quality: AnalysisQuality
    limitations: list[str] = Field(default_factory=list)


# ── Run report ───────────────────────────────────────────────────────────────


class AssessmentReport(BaseModel):
    """Everything one assessment run produces."""

    package_id: str = ""
    risk_score: float
    risk_level: PackageRiskLevel
    static_analysis: StaticAnalysisResult
    cross_module: CrossModuleAnalysisResult
    cross_module_findings: list[StaticFinding] = Field(default_factory=list)
    validation: ValidationResult | None = None
    confidence: ConfidenceMetrics
    prompt_context: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
