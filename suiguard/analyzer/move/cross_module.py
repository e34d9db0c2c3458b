"""Two-pass capability flow analysis across the modules of a package.

Pass 1 finds capability types by naming convention and records every
place they are taken as a parameter, constructed or transferred.
Pass 2 classifies transfers (external address vs. shared object), adds an
internal edge for every module that uses a capability it does not define,
and derives package-level risks from the resulting flow set.

Ability inference is token based and only a hint: ``has_copy`` and
``has_drop`` are always False and the risk rules rely on that.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

from suiguard.core.types import (
    EXTERNAL_ADDRESS,
    SHARED_OBJECT,
    CapabilityDefinition,
    CapabilityFlow,
    CapabilityUsage,
    CrossModuleAnalysisResult,
    CrossModuleRisk,
    FindingConfidence,
    FlowType,
    PublicFunction,
    RiskLevel,
    Severity,
    StaticFinding,
    UsageType,
)

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


# ── Vocabulary ───────────────────────────────────────────────────────────────

CAPABILITY_NAMES: tuple[str, ...] = (
    "AdminCap",
    "OwnerCap",
    "TreasuryCap",
    "UpgradeCap",
    "MintCap",
    "BurnCap",
    "PauseCap",
    "FreezeCap",
    "ConfigCap",
    "ManagerCap",
    "AuthorityCap",
    "GovernanceCap",
    "WithdrawCap",
    "ControllerCap",
)

CRITICAL_CAPABILITY_HINTS: tuple[str, ...] = ("AdminCap", "TreasuryCap", "UpgradeCap", "MintCap")

_EXTERNAL_TRANSFER_RES = (
    re.compile(r"transfer::public_transfer"),
    re.compile(r"transfer::transfer"),
)
_SHARE_RES = (
    re.compile(r"transfer::public_share_object"),
    re.compile(r"transfer::share_object"),
)
_CUSTOM_CAP_RE = re.compile(r"struct\s+(\w+(?:Cap|Authority))\b")

# Function boundary markers seen in source-like and disassembled text
_FUN_RE = re.compile(r"(?:public\s+)?(?:entry\s+)?fun\s+(\w+)")
_HEADER_RE = re.compile(
    r"^\s*(?:(?:public(?:\([a-z]+\))?|entry|native)\s+)+(\w+)\s*[<(]"
)
_LABEL_RE = re.compile(r"^([A-Za-z_]\w*):\s*$")
_BLOCK_LABEL_RE = re.compile(r"^[BL]\d+$")

_WIDE_IMPACT_MIN_MODULES = 3


def _fan_out(
    fn: Callable[[str], _T], modules: Sequence[str], max_workers: int,
) -> list[_T]:
    """Apply *fn* per module, in module order."""
    if max_workers > 1 and len(modules) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(fn, modules))
    return [fn(m) for m in modules]


def _unique(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


# ── Pass 1: definitions ──────────────────────────────────────────────────────


def _struct_abilities(code: str, name: str) -> set[str] | None:
    m = re.search(
        rf"struct\s+{re.escape(name)}\b(?:<[^>]*>)?\s+has\s+([\w,\s]+?)\s*\{{", code,
    )
    if not m:
        return None
    return {a.strip() for a in m.group(1).split(",") if a.strip()}


def _module_definitions(module_name: str, code: str) -> list[CapabilityDefinition]:
    found: list[CapabilityDefinition] = []

    for name in CAPABILITY_NAMES:
        if not re.search(rf"\b{name}\b", code):
            continue
        type_match = re.search(
            rf"([0-9a-fx]+::)?{re.escape(module_name)}::{name}", code, re.IGNORECASE,
        )
        abilities = _struct_abilities(code, name)
        if abilities is not None:
            has_store = "store" in abilities
            has_key = "key" in abilities
        else:
            has_store = "store" in code or "public_transfer" in code
            has_key = "key" in code
        found.append(CapabilityDefinition(
            name=name,
            module=module_name,
            full_type=type_match.group(0) if type_match else f"{module_name}::{name}",
            has_store=has_store,
            has_key=has_key,
        ))

    for m in _CUSTOM_CAP_RE.finditer(code):
        name = m.group(1)
        if name in CAPABILITY_NAMES:
            continue
        found.append(CapabilityDefinition(
            name=name,
            module=module_name,
            full_type=f"{module_name}::{name}",
            has_store="public_transfer" in code or "store" in code,
            has_key=True,
        ))

    return found


def extract_capability_definitions(
    module_code: Mapping[str, str], max_workers: int = 1,
) -> list[CapabilityDefinition]:
    """Capability types mentioned by each module, unique per (module, name)."""
    modules = list(module_code)
    batches = _fan_out(
        lambda m: _module_definitions(m, module_code[m]), modules, max_workers,
    )
    seen: set[tuple[str, str]] = set()
    unique: list[CapabilityDefinition] = []
    for cap in (c for batch in batches for c in batch):
        key = (cap.module, cap.name)
        if key in seen:
            continue
        seen.add(key)
        unique.append(cap)
    return unique


def _primary_definitions(
    capabilities: Iterable[CapabilityDefinition], module_code: Mapping[str, str],
) -> dict[str, CapabilityDefinition]:
    """One definition per capability name: the module declaring the struct,
    else the first module mentioning it."""
    primary: dict[str, CapabilityDefinition] = {}
    for cap in capabilities:
        declares = re.search(
            rf"struct\s+{re.escape(cap.name)}\b", module_code.get(cap.module, ""),
        )
        current = primary.get(cap.name)
        if current is None:
            primary[cap.name] = cap
        elif declares and not re.search(
            rf"struct\s+{re.escape(cap.name)}\b", module_code.get(current.module, ""),
        ):
            primary[cap.name] = cap
    return primary


# ── Pass 1b: usages ──────────────────────────────────────────────────────────


def find_containing_function(code: str, cap_name: str, operation: str) -> str | None:
    """Name of the function whose body first mentions *cap_name* with *operation*.

    Single forward scan keeping the most recent function marker. Reordered
    or stripped text can misattribute; callers fall back to a default.
    """
    current: str | None = None
    for line in code.splitlines():
        m = _FUN_RE.search(line) or _HEADER_RE.match(line)
        if m:
            current = m.group(1)
        else:
            label = _LABEL_RE.match(line.strip())
            if label and not _BLOCK_LABEL_RE.match(label.group(1)):
                current = label.group(1)

        if cap_name in line and operation in line:
            return current
    return None


def _param_usages(
    functions: Iterable[PublicFunction], primary: Mapping[str, CapabilityDefinition],
) -> list[CapabilityUsage]:
    usages: list[CapabilityUsage] = []
    for func in functions:
        for param in func.params:
            text = param.signature_text()
            for name, cap in primary.items():
                if name not in text:
                    continue
                if param.is_mutable_reference:
                    usage = UsageType.BORROWED_MUT
                elif param.is_reference:
                    usage = UsageType.BORROWED_IMM
                else:
                    usage = UsageType.PARAMETER
                usages.append(CapabilityUsage(
                    capability=name,
                    full_type=cap.full_type,
                    module=func.module,
                    function_name=func.name,
                    usage_type=usage,
                ))
    return usages


def _moves_capabilities(code: str) -> bool:
    return any(r.search(code) for r in _EXTERNAL_TRANSFER_RES + _SHARE_RES)


def _module_text_usages(
    module_name: str, code: str, primary: Mapping[str, CapabilityDefinition],
) -> list[CapabilityUsage]:
    usages: list[CapabilityUsage] = []
    moves = _moves_capabilities(code)
    for name, cap in primary.items():
        if name not in code:
            continue
        if moves:
            usages.append(CapabilityUsage(
                capability=name,
                full_type=cap.full_type,
                module=module_name,
                function_name=find_containing_function(code, name, "transfer") or "unknown",
                usage_type=UsageType.TRANSFERRED,
            ))
        if "Pack" in code:
            usages.append(CapabilityUsage(
                capability=name,
                full_type=cap.full_type,
                module=module_name,
                function_name=find_containing_function(code, name, "Pack") or "init",
                usage_type=UsageType.CREATED,
            ))
    return usages


def extract_capability_usages(
    module_code: Mapping[str, str],
    functions: Iterable[PublicFunction],
    capabilities: Iterable[CapabilityDefinition],
    max_workers: int = 1,
) -> list[CapabilityUsage]:
    """Parameter usages first, then text usages per module in module order."""
    primary = _primary_definitions(capabilities, module_code)
    usages = _param_usages(functions, primary)
    modules = list(module_code)
    batches = _fan_out(
        lambda m: _module_text_usages(m, module_code[m], primary), modules, max_workers,
    )
    for batch in batches:
        usages.extend(batch)
    return usages


# ── Pass 2: flows ────────────────────────────────────────────────────────────


def analyze_capability_flows(
    module_code: Mapping[str, str],
    capabilities: Iterable[CapabilityDefinition],
    usages: Sequence[CapabilityUsage],
) -> list[CapabilityFlow]:
    flows: list[CapabilityFlow] = []
    primary = _primary_definitions(capabilities, module_code)

    for name, cap in primary.items():
        cap_usages = [u for u in usages if u.capability == name]

        for transfer in (u for u in cap_usages if u.usage_type == UsageType.TRANSFERRED):
            code = module_code.get(transfer.module, "")
            external = any(r.search(code) for r in _EXTERNAL_TRANSFER_RES) and (
                "address" in code or "Arg" in code
            )
            if external:
                to, flow_type = EXTERNAL_ADDRESS, FlowType.EXTERNAL_TRANSFER
            elif any(r.search(code) for r in _SHARE_RES):
                to, flow_type = SHARED_OBJECT, FlowType.PUBLIC_SHARE
            else:
                continue
            flows.append(CapabilityFlow(
                capability=name,
                full_type=cap.full_type,
                from_module=transfer.module,
                to=to,
                via_function=transfer.function_name,
                flow_type=flow_type,
                risk_level=RiskLevel.CRITICAL,
            ))

        for used_in in _unique(u.module for u in cap_usages):
            if used_in == cap.module:
                continue
            flows.append(CapabilityFlow(
                capability=name,
                full_type=cap.full_type,
                from_module=cap.module,
                to=used_in,
                via_function="cross_module_import",
                flow_type=FlowType.INTERNAL,
                risk_level=RiskLevel.SAFE,
            ))

    return flows


# ── Risks ────────────────────────────────────────────────────────────────────


def detect_cross_module_risks(
    capabilities: Iterable[CapabilityDefinition],
    usages: Sequence[CapabilityUsage],
    flows: Sequence[CapabilityFlow],
) -> list[CrossModuleRisk]:
    """Derive package-level risks from flows and usages alone."""
    risks: list[CrossModuleRisk] = []

    def users_of(name: str) -> list[str]:
        return _unique(u.module for u in usages if u.capability == name)

    for t in (f for f in flows if f.flow_type == FlowType.EXTERNAL_TRANSFER):
        affected = users_of(t.capability)
        if len(affected) <= 1:
            continue
        risks.append(CrossModuleRisk(
            pattern_id="CROSS-MODULE-CAP-TRANSFER",
            severity=Severity.CRITICAL,
            affected_modules=affected,
            source_module=t.from_module,
            source_function=t.via_function,
            description=(
                f"{t.capability} is transferred to an external address in "
                f"{t.from_module}::{t.via_function}, but is also used in {len(affected)} "
                "modules. If transferred to a malicious address, ALL functionality "
                "depending on this capability is compromised."
            ),
            evidence=(
                f"External transfer in {t.from_module}::{t.via_function}, "
                f"affects modules: {', '.join(affected)}"
            ),
        ))

    for s in (f for f in flows if f.flow_type == FlowType.PUBLIC_SHARE):
        if not any(h in s.capability for h in CRITICAL_CAPABILITY_HINTS):
            continue
        affected = users_of(s.capability)
        risks.append(CrossModuleRisk(
            pattern_id="CROSS-MODULE-CAP-SHARED",
            severity=Severity.CRITICAL,
            affected_modules=affected,
            source_module=s.from_module,
            source_function=s.via_function,
            description=(
                f"Critical capability {s.capability} is shared as a public object in "
                f"{s.from_module}::{s.via_function}. Anyone can access this capability, "
                f"compromising all {len(affected)} modules that depend on it."
            ),
            evidence=f"Shared object in {s.from_module}::{s.via_function}",
        ))

    internal_targets: dict[str, list[str]] = {}
    for f in flows:
        if f.flow_type != FlowType.INTERNAL or f.to in (EXTERNAL_ADDRESS, SHARED_OBJECT):
            continue
        targets = internal_targets.setdefault(f.capability, [])
        if f.to not in targets:
            targets.append(f.to)

    for name, targets in internal_targets.items():
        if len(targets) < _WIDE_IMPACT_MIN_MODULES:
            continue
        escapes = any(
            f.capability == name and f.flow_type == FlowType.EXTERNAL_TRANSFER for f in flows
        )
        if not escapes:
            continue
        risks.append(CrossModuleRisk(
            pattern_id="CROSS-MODULE-WIDE-IMPACT",
            severity=Severity.HIGH,
            affected_modules=list(targets),
            source_module="multiple",
            source_function="multiple",
            description=(
                f"Capability {name} is used across {len(targets)} modules and can be "
                "transferred externally. A single transfer compromises functionality "
                "across the entire package."
            ),
            evidence=f"{name} used in: {', '.join(targets)}",
        ))

    return risks


# ── Entry points ─────────────────────────────────────────────────────────────


def run_cross_module_analysis(
    module_code: Mapping[str, str],
    functions: Iterable[PublicFunction],
    max_workers: int = 1,
) -> CrossModuleAnalysisResult:
    """Run both passes and risk detection over a package."""
    start = time.perf_counter()
    funcs = list(functions)

    capabilities = extract_capability_definitions(module_code, max_workers)
    logger.debug("Cross-module: found %d capabilities", len(capabilities))

    usages = extract_capability_usages(module_code, funcs, capabilities, max_workers)
    logger.debug("Cross-module: found %d capability usages", len(usages))

    flows = analyze_capability_flows(module_code, capabilities, usages)
    logger.debug("Cross-module: detected %d capability flows", len(flows))

    risks = detect_cross_module_risks(capabilities, usages, flows)

    elapsed_ms = (time.perf_counter() - start) * 1000.0
    logger.info(
        "Cross-module analysis: %d capabilities, %d flows, %d risk(s) in %.1fms",
        len(capabilities), len(flows), len(risks), elapsed_ms,
        extra={"findings_count": len(risks), "duration_ms": round(elapsed_ms, 2)},
    )

    return CrossModuleAnalysisResult(
        capabilities=capabilities,
        usages=usages,
        flows=flows,
        risks=risks,
        analysis_time_ms=elapsed_ms,
    )


def risks_to_static_findings(risks: Iterable[CrossModuleRisk]) -> list[StaticFinding]:
    return [
        StaticFinding(
            pattern_id=r.pattern_id,
            severity=r.severity,
            function_name=r.source_function,
            module_name=r.source_module,
            evidence=r.evidence,
            description=r.description,
            confidence=FindingConfidence.LIKELY,
        )
        for r in risks
    ]


def get_cross_module_findings(
    module_code: Mapping[str, str],
    functions: Iterable[PublicFunction],
    max_workers: int = 1,
) -> list[StaticFinding]:
    """Cross-module risks in the static finding shape."""
    result = run_cross_module_analysis(module_code, functions, max_workers)
    return risks_to_static_findings(result.risks)


def format_cross_module_for_prompt(result: CrossModuleAnalysisResult) -> str:
    if not result.risks:
        return "No cross-module capability risks detected."

    lines = [f"Cross-Module Analysis: {len(result.risks)} risks found", ""]
    for r in result.risks:
        lines.append(f"[{r.severity.value}] {r.pattern_id}")
        lines.append(f"  Source: {r.source_module}::{r.source_function}")
        lines.append(f"  Affected: {', '.join(r.affected_modules)}")
        lines.append(f"  {r.description}")
        lines.append("")

    if result.capabilities:
        lines.append("Capabilities tracked:")
        for cap in result.capabilities[:5]:
            lines.append(f"  - {cap.module}::{cap.name}")
        if len(result.capabilities) > 5:
            lines.append(f"  ... and {len(result.capabilities) - 5} more")

    return "\n".join(lines)
