"""Shared fixtures for the suiguard test suite."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from suiguard.core.config import Settings
from suiguard.core.metrics import MetricsCollector
from suiguard.core.types import (
    ModelFinding,
    Param,
    ParamKind,
    PublicFunction,
    Severity,
)
from suiguard.ingestion.bundle import PackageBundle


# ── Param builders ───────────────────────────────────────────────────────────


def _struct(identifier: str, type_args: list[str] | None = None) -> Param:
    return Param(kind=ParamKind.STRUCT, value=identifier, type_args=type_args or [])


def _ref(identifier: str, mutable: bool = False, type_args: list[str] | None = None) -> Param:
    return Param(
        kind=ParamKind.REFERENCE,
        type="struct",
        value=identifier,
        mutable=mutable,
        type_args=type_args or [],
    )


def _prim(name: str) -> Param:
    return Param(kind=ParamKind.PRIMITIVE, type=name)


@pytest.fixture
def struct_param() -> Callable[..., Param]:
    return _struct


@pytest.fixture
def ref_param() -> Callable[..., Param]:
    return _ref


@pytest.fixture
def prim_param() -> Callable[[str], Param]:
    return _prim


# ── Disassembly fixtures ─────────────────────────────────────────────────────

ADMIN_MODULE = """\
module 0xabc::admin {
struct AdminCap has key, store {
	id: UID
}
entry public revoke(Arg0: AdminCap, Arg1: address) {
B0:
	0: MoveLoc[0](Arg0: AdminCap)
	1: MoveLoc[1](Arg1: address)
	2: Call transfer::public_transfer<AdminCap>(AdminCap, address)
	3: Ret
}
}
"""

VAULT_MODULE = """\
module 0xabc::vault {
use 0xabc::admin;
entry public set_limit(Arg0: &admin::AdminCap, Arg1: &mut Vault, Arg2: u64) {
B0:
	0: MoveLoc[2](Arg2: u64)
	1: MoveLoc[1](Arg1: &mut Vault)
	2: MutBorrowField[0](Vault.limit: u64)
	3: WriteRef
	4: Ret
}
}
"""

MARKET_MODULE = """\
module 0xabc::market {
use 0xabc::admin;
entry public list(Arg0: &admin::AdminCap, Arg1: &mut Market) {
B0:
	0: MoveLoc[1](Arg1: &mut Market)
	1: MutBorrowField[0](Market.open: bool)
	2: WriteRef
	3: Ret
}
}
"""

COIN_MODULE = """\
module 0xabc::pool {
entry public withdraw(Arg0: &mut Coin<SUI>, Arg1: u64, Arg2: &mut TxContext) {
B0:
	0: MoveLoc[0](Arg0: &mut Coin<SUI>)
	1: MoveLoc[1](Arg1: u64)
	2: Call coin::take<SUI>(&mut Balance<SUI>, u64, &mut TxContext): Coin<SUI>
	3: StLoc[3](loc0: Coin<SUI>)
	4: MoveLoc[3](loc0: Coin<SUI>)
	5: Call tx_context::sender(&TxContext): address
	6: Call transfer::public_transfer<Coin<SUI>>(Coin<SUI>, address)
	7: Ret
}
}
"""


@pytest.fixture
def admin_package() -> tuple[dict[str, str], list[PublicFunction]]:
    """AdminCap defined in ``admin``, borrowed by ``vault`` and ``market``,
    transferred out in ``admin::revoke``."""
    module_code = {"admin": ADMIN_MODULE, "vault": VAULT_MODULE, "market": MARKET_MODULE}
    functions = [
        PublicFunction(
            module="admin",
            name="revoke",
            params=[_struct("0xabc::admin::AdminCap"), _prim("Address")],
        ),
        PublicFunction(
            module="vault",
            name="set_limit",
            params=[
                _ref("0xabc::admin::AdminCap"),
                _ref("0xabc::vault::Vault", mutable=True),
                _prim("U64"),
            ],
        ),
        PublicFunction(
            module="market",
            name="list",
            params=[_ref("0xabc::admin::AdminCap"), _ref("0xabc::market::Market", mutable=True)],
        ),
    ]
    return module_code, functions


@pytest.fixture
def coin_withdraw() -> tuple[dict[str, str], PublicFunction]:
    """``pool::withdraw(&mut Coin<SUI>, u64, &mut TxContext)`` that takes and
    transfers coins on separate lines."""
    func = PublicFunction(
        module="pool",
        name="withdraw",
        params=[
            _ref("0x2::coin::Coin", mutable=True, type_args=["0x2::sui::SUI"]),
            _prim("U64"),
            _ref("0x2::tx_context::TxContext", mutable=True),
        ],
    )
    return {"pool": COIN_MODULE}, func


@pytest.fixture
def admin_bundle(admin_package) -> PackageBundle:
    module_code, functions = admin_package
    return PackageBundle(package_id="0xabc", modules=module_code, functions=functions)


# ── Model findings ───────────────────────────────────────────────────────────


@pytest.fixture
def good_model_finding() -> ModelFinding:
    """A finding that checks out against ``admin_package``."""
    return ModelFinding(
        function_name="admin::revoke",
        technical_reason="AdminCap can be sent to an arbitrary address, letting the receiver drain the vault.",
        matched_pattern_id="STATIC-ADMINCAP-TRANSFER",
        severity=Severity.CRITICAL,
        evidence_code_snippet="Call transfer::public_transfer<AdminCap>(AdminCap, address)",
    )


@pytest.fixture
def hallucinated_model_finding() -> ModelFinding:
    return ModelFinding(
        function_name="totally_unknown_fn",
        technical_reason="Reentrancy in the lending loop.",
        matched_pattern_id="FAKE-99",
        severity=Severity.MEDIUM,
    )


# ── Runtime ──────────────────────────────────────────────────────────────────


@pytest.fixture
def collector() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)
