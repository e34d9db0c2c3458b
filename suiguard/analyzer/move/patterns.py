"""Sui Move rule catalog.

Each rule pairs an identifier and severity with up to three detectors:

    signature   predicate over a public function's parameter types
    bytecode    regexes searched in the module's disassembled text
    combined    predicate over the module text and the function together

The catalog is process-wide and immutable. The knowledge-base tables at
the bottom hold the pattern ids a model finding may legitimately cite.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from types import MappingProxyType

from suiguard.core.types import Param, ParamKind, PublicFunction, Severity


# ── Types ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DetectorMatch:
    """Result of one detector; ``evidence`` is empty when nothing matched."""
    matched: bool
    evidence: str = ""


NO_MATCH = DetectorMatch(False)

SignatureCheck = Callable[[PublicFunction], DetectorMatch]
CombinedCheck = Callable[[str, PublicFunction], DetectorMatch]


@dataclass(frozen=True)
class PatternDefinition:
    """One static rule."""
    id: str
    severity: Severity
    description: str
    signature_check: SignatureCheck | None = None
    bytecode_patterns: tuple[re.Pattern[str], ...] = ()
    combined_check: CombinedCheck | None = None


def _rx(*sources: str) -> tuple[re.Pattern[str], ...]:
    # `.` stays single-line: a bytecode match must sit on one line
    return tuple(re.compile(s, re.IGNORECASE) for s in sources)


# ── Parameter helpers ────────────────────────────────────────────────────────


def _param_texts(func: PublicFunction) -> list[str]:
    return [p.signature_text().lower() for p in func.params]


def _takes_param_containing(*needles: str, evidence: str) -> SignatureCheck:
    """Build a signature check firing when a parameter mentions any needle."""

    def check(func: PublicFunction) -> DetectorMatch:
        for text in _param_texts(func):
            if any(n in text for n in needles):
                return DetectorMatch(True, evidence.format(name=func.name))
        return NO_MATCH

    return check


def _is_type_parameter_arg(arg: str) -> bool:
    return bool(re.fullmatch(r"T\d+", arg)) or "typeparameter" in arg.lower().replace("-", "")


def _has_generic_coin_param(func: PublicFunction) -> bool:
    for param in func.params:
        # references to structs are flattened onto the reference itself
        is_struct = param.kind == ParamKind.STRUCT or (
            param.kind == ParamKind.REFERENCE and param.type == "struct"
        )
        if (
            is_struct
            and isinstance(param.value, str)
            and param.value.endswith("::coin::Coin")
            and any(_is_type_parameter_arg(a) for a in param.type_args or [])
        ):
            return True

        text = param.signature_text()
        if "Coin<" in text and ("type-parameter" in text or "TypeParameter" in text):
            return True
    return False


# ── Combined checks ──────────────────────────────────────────────────────────

_DRAIN_KEYWORDS = ("withdraw", "drain", "sweep", "collect", "extract", "remove")
_FEE_KEYWORDS = ("set_fee", "update_fee", "change_fee", "set_rate", "update_rate")
_EVENT_WORTHY_KEYWORDS = ("withdraw", "transfer", "mint", "burn", "upgrade", "pause")
_CAP_HINTS = ("cap", "admin", "owner")


def _generic_drain(_code: str, func: PublicFunction) -> DetectorMatch:
    name = func.name.lower()
    if any(k in name for k in _DRAIN_KEYWORDS) and _has_generic_coin_param(func):
        return DetectorMatch(
            True, f"Generic withdraw function {func.name} can extract any Coin<T> type",
        )
    return NO_MATCH


def _is_mutable_coin_ref(param: Param) -> bool:
    return (
        param.is_mutable_reference
        and isinstance(param.value, str)
        and param.value.endswith("::coin::Coin")
    )


def _coin_split_transfer(code: str, func: PublicFunction) -> DetectorMatch:
    # a recipient (address / object id) or a coin the caller lets us split from
    takes_recipient = any(
        "address" in t or "0x2::object::id" in t for t in _param_texts(func)
    ) or any(_is_mutable_coin_ref(p) for p in func.params)
    if takes_recipient and "coin::" in code and "transfer::" in code:
        return DetectorMatch(
            True, f"Function {func.name} transfers coins to address parameter",
        )
    return NO_MATCH


def _shared_mut_no_cap(_code: str, func: PublicFunction) -> DetectorMatch:
    has_mut_ref = any(p.is_mutable_reference for p in func.params)
    has_cap = any(h in t for t in _param_texts(func) for h in _CAP_HINTS)
    if has_mut_ref and not has_cap:
        return DetectorMatch(
            True, f"Function {func.name} mutates shared state without capability check",
        )
    return NO_MATCH


def _fee_manipulation(_code: str, func: PublicFunction) -> DetectorMatch:
    name = func.name.lower()
    for kw in _FEE_KEYWORDS:
        if kw in name or kw.replace("_", "", 1) in name:
            return DetectorMatch(True, f"Function {func.name} can modify fee parameters")
    return NO_MATCH


def _missing_events(code: str, func: PublicFunction) -> DetectorMatch:
    name = func.name.lower()
    if any(k in name for k in _EVENT_WORTHY_KEYWORDS) and "event::emit" not in code:
        return DetectorMatch(
            True, f"Critical function {func.name} does not emit events",
        )
    return NO_MATCH


# ── Catalog ──────────────────────────────────────────────────────────────────

STATIC_PATTERNS: tuple[PatternDefinition, ...] = (
    PatternDefinition(
        id="STATIC-ADMINCAP-TRANSFER",
        severity=Severity.CRITICAL,
        description="AdminCap or OwnerCap transferred in public function - allows admin privilege transfer",
        signature_check=_takes_param_containing(
            "admincap", "ownercap",
            evidence="Function {name} takes AdminCap/OwnerCap as parameter",
        ),
        bytecode_patterns=_rx(
            r"AdminCap.*transfer::public_transfer",
            r"OwnerCap.*transfer::public_transfer",
            r"transfer::public_transfer.*AdminCap",
        ),
    ),
    PatternDefinition(
        id="STATIC-TREASURYCAP-PUBLIC",
        severity=Severity.CRITICAL,
        description="TreasuryCap exposed in public function - allows unlimited token minting",
        signature_check=_takes_param_containing(
            "treasurycap",
            evidence="Function {name} takes TreasuryCap as parameter - can mint tokens",
        ),
    ),
    PatternDefinition(
        id="STATIC-UPGRADECAP-TRANSFER",
        severity=Severity.CRITICAL,
        description="UpgradeCap transferred to arbitrary address - allows package takeover",
        signature_check=_takes_param_containing(
            "upgradecap",
            evidence="Function {name} takes UpgradeCap as parameter - can upgrade package",
        ),
        bytecode_patterns=_rx(
            r"UpgradeCap.*transfer",
            r"transfer.*UpgradeCap",
            r"package::authorize_upgrade",
        ),
    ),
    PatternDefinition(
        id="STATIC-GENERIC-DRAIN",
        severity=Severity.HIGH,
        description="Generic withdraw function with type parameter <T> - can drain any coin type",
        combined_check=_generic_drain,
    ),
    PatternDefinition(
        id="STATIC-BALANCE-DRAIN",
        severity=Severity.HIGH,
        description="Balance extraction with public_transfer - funds sent to parameter address",
        bytecode_patterns=_rx(
            r"balance::withdraw_all.*transfer::public_transfer",
            r"balance::split.*transfer::public_transfer",
            r"coin::from_balance.*transfer::public_transfer",
        ),
    ),
    PatternDefinition(
        id="STATIC-COIN-SPLIT-TRANSFER",
        severity=Severity.HIGH,
        description="Coin split and transfer to arbitrary recipient - potential fund extraction",
        bytecode_patterns=_rx(
            r"coin::split.*transfer::public_transfer",
            r"coin::take.*transfer::public_transfer",
        ),
        combined_check=_coin_split_transfer,
    ),
    PatternDefinition(
        id="STATIC-UNLIMITED-MINT",
        severity=Severity.HIGH,
        description="Unlimited minting capability detected",
        bytecode_patterns=_rx(
            r"coin::mint\s*<",
            r"coin::mint_and_transfer",
            r"supply::increase",
        ),
    ),
    PatternDefinition(
        id="STATIC-SHARED-MUT-NO-CAP",
        severity=Severity.MEDIUM,
        description="Shared object mutation without capability check - anyone can modify state",
        combined_check=_shared_mut_no_cap,
    ),
    PatternDefinition(
        id="STATIC-DYNAMIC-FIELD-ADD",
        severity=Severity.MEDIUM,
        description="Dynamic field addition in public function - can inject arbitrary data",
        bytecode_patterns=_rx(
            r"dynamic_field::add",
            r"dynamic_object_field::add",
        ),
    ),
    PatternDefinition(
        id="STATIC-CLOCK-DEPENDENT",
        severity=Severity.MEDIUM,
        description="Clock-based logic detected - time manipulation risk",
        signature_check=_takes_param_containing(
            "clock",
            evidence="Function {name} uses Clock for time-based logic",
        ),
        bytecode_patterns=_rx(
            r"clock::timestamp_ms",
            r"sui::clock::Clock",
        ),
    ),
    PatternDefinition(
        id="STATIC-PAUSE-CONTROL",
        severity=Severity.MEDIUM,
        description="Pause/freeze mechanism detected - admin can halt operations",
        bytecode_patterns=_rx(
            r"pause|unpause|paused|is_paused|set_paused",
            r"freeze|unfreeze|frozen|is_frozen",
            r"halt|unhalt|halted",
        ),
    ),
    PatternDefinition(
        id="STATIC-FEE-MANIPULATION",
        severity=Severity.MEDIUM,
        description="Fee setting function detected - fees can be changed arbitrarily",
        combined_check=_fee_manipulation,
    ),
    PatternDefinition(
        id="STATIC-MISSING-EVENTS",
        severity=Severity.LOW,
        description="Critical operation without event emission - reduces transparency",
        combined_check=_missing_events,
    ),
)

STATIC_PATTERN_IDS: tuple[str, ...] = tuple(p.id for p in STATIC_PATTERNS)

_BY_ID = {p.id: p for p in STATIC_PATTERNS}


def get_pattern(pattern_id: str) -> PatternDefinition | None:
    """Look up a static rule by id."""
    return _BY_ID.get(pattern_id)


# ── Knowledge base ───────────────────────────────────────────────────────────

KNOWLEDGE_BASE_NAMES: MappingProxyType[str, str] = MappingProxyType({
    "CRITICAL-01": "Admin Drain / Unrestricted Withdraw",
    "CRITICAL-02": "Unrestricted Code Upgrade",
    "HIGH-01": "Unlimited Token Minting",
    "HIGH-02": "Contract Pausing / Freezing",
    "HIGH-03": "Arbitrary Fee Manipulation",
    "HIGH-04": "Centralized Access Control / Role Bypass",
    "MEDIUM-01": "Oracle Manipulation Risk",
    "MEDIUM-02": "Timestamp Dependence",
    "MEDIUM-03": "Reentrancy Potential (Move Context)",
    "MEDIUM-04": "Flash Loan Logic Exploit Risk",
    "LOW-01": "Integer Overflow/Underflow Risk (Potential)",
    "LOW-02": "Denial of Service (DoS) Potential",
    "LOW-03": "Misleading Event Emission / Lack of Events",
})

_KB_SEVERITY: dict[str, Severity] = {
    "CRITICAL-01": Severity.CRITICAL,
    "CRITICAL-02": Severity.CRITICAL,
    "HIGH-01": Severity.HIGH,
    "HIGH-02": Severity.HIGH,
    "HIGH-03": Severity.HIGH,
    "HIGH-04": Severity.HIGH,
    "MEDIUM-01": Severity.MEDIUM,
    "MEDIUM-02": Severity.MEDIUM,
    "MEDIUM-03": Severity.MEDIUM,
    "MEDIUM-04": Severity.MEDIUM,
    "LOW-01": Severity.LOW,
    "LOW-02": Severity.LOW,
    "LOW-03": Severity.LOW,
    "SUI-CRITICAL-01": Severity.CRITICAL,
    "SUI-CRITICAL-02": Severity.CRITICAL,
    "SUI-HIGH-01": Severity.HIGH,
    "SUI-HIGH-02": Severity.HIGH,
    "SUI-MEDIUM-01": Severity.MEDIUM,
    "SUI-MEDIUM-02": Severity.MEDIUM,
}

KNOWN_PATTERN_IDS: tuple[str, ...] = tuple(_KB_SEVERITY) + STATIC_PATTERN_IDS

PATTERN_SEVERITY_MAP: MappingProxyType[str, Severity] = MappingProxyType({
    **_KB_SEVERITY,
    **{p.id: p.severity for p in STATIC_PATTERNS},
})

# Identifier shapes accepted even when the exact id is not in the table
KNOWN_PATTERN_FORMATS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^CRITICAL-\d+$"),
    re.compile(r"^HIGH-\d+$"),
    re.compile(r"^MEDIUM-\d+$"),
    re.compile(r"^LOW-\d+$"),
    re.compile(r"^SUI-CRITICAL-\d+$"),
    re.compile(r"^SUI-HIGH-\d+$"),
    re.compile(r"^SUI-MEDIUM-\d+$"),
    re.compile(r"^SUI-LOW-\d+$"),
    re.compile(r"^STATIC-"),
)
