"""suiguard CLI: deterministic security triage for Sui Move packages.

Usage:
    suiguard analyze <bundle.json>            Run static + capability analysis
    suiguard analyze <bundle.json> --findings model.json --risk-score 72
                                              Also validate model findings and score
    suiguard patterns                         List the rule catalog
    suiguard config                           Show current configuration

Examples:
    suiguard analyze ./pkg.json --severity high
    suiguard analyze ./pkg.json --format json -o report.json
    suiguard analyze ./pkg.json --format prompt
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from suiguard import __version__
from suiguard.analyzer.move.patterns import (
    KNOWLEDGE_BASE_NAMES,
    PATTERN_SEVERITY_MAP,
    STATIC_PATTERNS,
)
from suiguard.core.types import AssessmentReport, Severity, StaticFinding


# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_BOLD = "\033[1m"
_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"

_SEV_COLOR = {
    "critical": _RED,
    "high": "\033[38;5;208m",  # orange
    "medium": _YELLOW,
    "low": _CYAN,
}

_LEVEL_COLOR = {
    "critical": _RED,
    "high": "\033[38;5;208m",
    "moderate": _YELLOW,
    "low": _GREEN,
}


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


# ── Banner ───────────────────────────────────────────────────────────────────

BANNER = rf"""
{_BOLD}{_CYAN} ___ _   _ ___ ___ _   _  _   ___ ___
/ __| | | |_ _/ __| | | |/_\ | _ \   \
\__ \ |_| || | (_ | |_| / _ \|   / |) |
|___/\___/|___\___|\___/_/ \_\_|_\___/{_RESET}
  {_DIM}Sui Move Security Triage v{__version__}{_RESET}
"""


# ── CLI argument parser ─────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="suiguard",
        description="suiguard: Sui Move package security triage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--no-banner", action="store_true", help="Suppress the startup banner")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")

    sub = parser.add_subparsers(dest="command")

    # ── analyze ──────────────────────────────────────────────────────────────
    analyze_p = sub.add_parser("analyze", help="Analyze a package bundle")
    analyze_p.add_argument("bundle", help="Path to a package bundle (.json)")
    analyze_p.add_argument("--findings", help="Model findings to validate (.json)")
    analyze_p.add_argument(
        "--risk-score", type=float, default=None, help="Risk score proposed by the model (0-100)",
    )
    analyze_p.add_argument(
        "--llm-error",
        action="append",
        default=[],
        metavar="MSG",
        help="Record a model-call error (repeatable)",
    )
    analyze_p.add_argument(
        "--severity",
        choices=["critical", "high", "medium", "low"],
        help="Minimum severity to report",
    )
    analyze_p.add_argument(
        "--format",
        "-f",
        default="table",
        choices=["table", "json", "prompt"],
        help="Output format (default: table)",
    )
    analyze_p.add_argument("--output", "-o", help="Write output to file instead of stdout")
    analyze_p.add_argument(
        "--workers", type=int, default=None, help="Threads for per-module analysis",
    )

    # ── patterns ─────────────────────────────────────────────────────────────
    sub.add_parser("patterns", help="List static rules and known pattern ids")

    # ── config ───────────────────────────────────────────────────────────────
    sub.add_parser("config", help="Show current configuration")

    return parser


# ── Analyze command ──────────────────────────────────────────────────────────

_SEV_ORDER = ["critical", "high", "medium", "low"]


def _sev_index(sev: str) -> int:
    try:
        return _SEV_ORDER.index(sev.lower())
    except ValueError:
        return 99


def _filter_findings(
    findings: list[StaticFinding], min_severity: str | None,
) -> list[StaticFinding]:
    selected = list(findings)
    if min_severity:
        cutoff = _sev_index(min_severity)
        selected = [f for f in selected if _sev_index(f.severity.value) <= cutoff]
    selected.sort(key=lambda f: _sev_index(f.severity.value))
    return selected


def _print_table(
    findings: list[StaticFinding], report: AssessmentReport, quiet: bool = False,
) -> None:
    """Pretty-print a report as a coloured table."""
    conf = report.confidence
    if not quiet:
        level = report.risk_level.value
        print(f"\n{_BOLD}Assessment complete{_RESET} — {report.package_id or 'local bundle'}")
        print(
            f"  Risk: {_c(f'{report.risk_score:.0f}/100 ({level})', _LEVEL_COLOR.get(level, ''))}"
            f"  |  Confidence: {conf.confidence_level.value}"
            f" [{conf.confidence_interval.lower}-{conf.confidence_interval.upper}]"
            f"  |  Modules: {conf.analysis_quality.modules_analyzed}"
            f"/{conf.analysis_quality.modules_total}\n"
        )

    if not findings:
        print(_c("  ✓ No findings at the requested severity level.", _GREEN))
    else:
        by_sev: dict[str, int] = {}
        for f in findings:
            key = f.severity.value.lower()
            by_sev[key] = by_sev.get(key, 0) + 1

        summary_parts = []
        for sev in _SEV_ORDER:
            count = by_sev.get(sev, 0)
            if count > 0:
                summary_parts.append(f"{_SEV_COLOR.get(sev, '')}{count} {sev.upper()}{_RESET}")
        print(f"  {' · '.join(summary_parts)}\n")

        for i, f in enumerate(findings, 1):
            sev = f.severity.value.lower()
            badge = _c(f" {sev.upper()} ", _SEV_COLOR.get(sev, "") + _BOLD)
            title = _c(f.pattern_id, _BOLD)
            loc = _c(f"  {f.module_name}::{f.function_name}", _DIM)
            print(f"  {_DIM}{i:>3}.{_RESET} {badge} {title}{loc}")

            if not quiet:
                desc = f.description[:200]
                if len(f.description) > 200:
                    desc += "…"
                print(f"       {_DIM}{desc}{_RESET}")
                print(f"       {_DIM}Confidence: {f.confidence.value}{_RESET}")
            print()

    if report.validation is not None and not quiet:
        s = report.validation.validation_summary
        print(
            f"  Model findings: {s.total} total, {_c(str(s.validated), _GREEN)} validated, "
            f"{_c(str(s.unvalidated), _YELLOW)} unvalidated, {_c(str(s.invalid), _RED)} removed"
            f"  (avg score {s.avg_validation_score})\n"
        )

    if not quiet:
        for rec in conf.recommendations:
            print(f"  {_c('→', _CYAN)} {rec}")
        if conf.recommendations:
            print()


def _run_analyze(args: argparse.Namespace) -> int:
    """Run an assessment and print the result."""
    from suiguard.ingestion.bundle import BundleError, load_bundle, load_model_findings
    from suiguard.pipeline.orchestrator import AssessmentOrchestrator

    path = Path(args.bundle)
    if not path.exists():
        print(_c(f"Error: path '{path}' does not exist.", _RED), file=sys.stderr)
        return 2

    try:
        bundle = load_bundle(path)
        model_findings = load_model_findings(args.findings) if args.findings else None
    except BundleError as exc:
        print(_c(f"Error: {exc}", _RED), file=sys.stderr)
        return 2

    if not args.quiet and args.format == "table":
        print(
            f"  Analyzing {_c(str(len(bundle.modules)), _CYAN)} module(s), "
            f"{_c(str(len(bundle.functions)), _CYAN)} public function(s)…"
        )

    orchestrator = AssessmentOrchestrator(max_workers=args.workers)
    report = orchestrator.run(
        bundle,
        model_findings=model_findings,
        risk_score=args.risk_score,
        llm_errors=args.llm_error,
    )

    all_findings = report.static_analysis.findings + report.cross_module_findings
    findings = _filter_findings(all_findings, args.severity)

    fmt = args.format
    if fmt == "table":
        _print_table(findings, report, quiet=args.quiet)
        output = None
    elif fmt == "json":
        output = report.model_dump_json(indent=2)
    else:
        output = report.prompt_context

    if output:
        if args.output:
            Path(args.output).write_text(output)
            if not args.quiet:
                print(f"  Written to {_c(args.output, _CYAN)}", file=sys.stderr)
        else:
            print(output)

    # Exit code: 1 if any critical/high findings
    has_critical = any(f.severity in (Severity.CRITICAL, Severity.HIGH) for f in all_findings)
    return 1 if has_critical else 0


# ── Patterns command ─────────────────────────────────────────────────────────


def _run_patterns() -> int:
    print(f"\n{_BOLD}Static rules{_RESET}\n")
    for p in STATIC_PATTERNS:
        sev = p.severity.value.lower()
        detectors = [
            name
            for name, present in (
                ("signature", p.signature_check is not None),
                ("bytecode", bool(p.bytecode_patterns)),
                ("combined", p.combined_check is not None),
            )
            if present
        ]
        print(
            f"  {_c(f'{p.severity.value:<8}', _SEV_COLOR.get(sev, ''))} {p.id:<28}"
            f" {_DIM}{'+'.join(detectors)}{_RESET}"
        )
        print(f"           {_DIM}{p.description}{_RESET}")

    print(f"\n{_BOLD}Knowledge base{_RESET}\n")
    for pid, sev in PATTERN_SEVERITY_MAP.items():
        if pid.startswith("STATIC-"):
            continue
        name = KNOWLEDGE_BASE_NAMES.get(pid, "")
        print(f"  {sev.value:<8} {pid:<16} {_DIM}{name}{_RESET}")
    print()
    return 0


# ── Config command ───────────────────────────────────────────────────────────


def _run_config() -> int:
    """Print current settings."""
    from suiguard.core.config import get_settings

    s = get_settings()
    print(f"\n{_BOLD}suiguard configuration{_RESET}\n")
    for field_name in sorted(type(s).model_fields.keys()):
        val = getattr(s, field_name, "")
        print(f"  {_DIM}{field_name}:{_RESET}  {val}")
    print()
    return 0


# ── Entrypoint ───────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"suiguard {__version__}")
        return 0

    if not args.no_banner:
        print(BANNER, file=sys.stderr)

    if not args.command:
        parser.print_help()
        return 0

    from suiguard.core.config import get_settings
    from suiguard.core.logging import setup_logging

    settings = get_settings()
    setup_logging(
        settings.app_env,
        "WARNING" if args.quiet else settings.log_level,
    )

    if args.command == "config":
        return _run_config()

    if args.command == "patterns":
        return _run_patterns()

    if args.command == "analyze":
        return _run_analyze(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
