"""suiguard: deterministic security triage for Sui Move packages."""

from suiguard.core.types import (
    AssessmentReport,
    ConfidenceMetrics,
    CrossModuleAnalysisResult,
    PublicFunction,
    Severity,
    StaticAnalysisResult,
    ValidationResult,
)

__version__ = "0.1.0"

__all__ = [
    "AssessmentReport",
    "ConfidenceMetrics",
    "CrossModuleAnalysisResult",
    "PublicFunction",
    "Severity",
    "StaticAnalysisResult",
    "ValidationResult",
]
