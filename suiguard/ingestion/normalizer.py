"""Convert Sui normalized-module JSON into analyzer inputs.

The node's ``getNormalizedMoveModulesByPackage`` payload describes each
parameter as either a primitive name (``"U64"``) or a one-key object
(``{"MutableReference": ...}``, ``{"Struct": {...}}``, ``{"Vector": ...}``,
``{"TypeParameter": 0}``). These helpers flatten that into :class:`Param`
records and pull the public entry points out of each module.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any

from suiguard.core.types import Param, ParamKind, PublicFunction

_DEP_PATTERNS = (
    re.compile(r"\b(0x[a-fA-F0-9]+)::"),
    re.compile(r"\buse ([a-fA-F0-9]{64})::"),
    re.compile(r"\b([a-fA-F0-9]{64})::[a-zA-Z_]"),
)


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


# ── Types ────────────────────────────────────────────────────────────────────


def _struct_identity(struct: Mapping[str, Any]) -> tuple[str, list[str]]:
    identifier = f"{struct.get('address')}::{struct.get('module')}::{struct.get('name')}"
    raw_args = struct.get("typeArguments", struct.get("type_arguments")) or []
    return identifier, [_render_type_argument(a) for a in raw_args]


def _render_type_argument(arg: Any) -> str:
    if isinstance(arg, str):
        return arg
    if isinstance(arg, dict):
        if "Struct" in arg:
            return _struct_identity(arg["Struct"])[0]
        if "Address" in arg:
            return f"Address({arg['Address']})"
        if "Vector" in arg:
            inner = normalize_move_type(arg["Vector"])
            if inner.kind == ParamKind.PRIMITIVE:
                return f"vector<{inner.type}>"
            return "vector"
    return _compact(arg)


def _normalize_reference(inner: Any, mutable: bool) -> Param:
    if isinstance(inner, str):
        return Param(kind=ParamKind.REFERENCE, type=inner, mutable=mutable)

    if not isinstance(inner, dict):
        return Param(
            kind=ParamKind.REFERENCE, type="unknown", value=_compact(inner), mutable=mutable,
        )

    if "Struct" in inner:
        identifier, type_args = _struct_identity(inner["Struct"])
        return Param(
            kind=ParamKind.REFERENCE,
            type="struct",
            value=identifier,
            type_args=type_args,
            mutable=mutable,
        )

    if "Vector" in inner:
        return Param(
            kind=ParamKind.REFERENCE,
            type="vector",
            value=normalize_move_type(inner["Vector"]),
            mutable=mutable,
        )

    # &(&mut T) collapses to a single reference, mutable if any level is
    if "MutableReference" in inner:
        return _normalize_reference(inner["MutableReference"], True)
    if "Reference" in inner:
        return _normalize_reference(inner["Reference"], mutable)

    return Param(
        kind=ParamKind.REFERENCE, type="unknown", value=_compact(inner), mutable=mutable,
    )


def normalize_move_type(raw: Any) -> Param:
    """Normalize one parameter type from the node's JSON."""
    if isinstance(raw, str):
        return Param(kind=ParamKind.PRIMITIVE, type=raw)

    if not isinstance(raw, dict):
        return Param(kind=ParamKind.UNKNOWN, value=_compact(raw))

    if "MutableReference" in raw:
        return _normalize_reference(raw["MutableReference"], True)
    if "Reference" in raw:
        return _normalize_reference(raw["Reference"], False)

    if "Struct" in raw:
        identifier, type_args = _struct_identity(raw["Struct"])
        return Param(kind=ParamKind.STRUCT, value=identifier, type_args=type_args)

    if "Vector" in raw:
        return Param(kind=ParamKind.VECTOR, value=normalize_move_type(raw["Vector"]))

    if "TypeParameter" in raw:
        return Param(kind=ParamKind.TYPE_PARAMETER, value=raw["TypeParameter"])

    return Param(kind=ParamKind.UNKNOWN, value=_compact(raw))


# ── Modules ──────────────────────────────────────────────────────────────────


def extract_public_functions(normalized_modules: Mapping[str, Any]) -> list[PublicFunction]:
    """Public functions of every module, in payload order.

    Only ``visibility == "Public"`` is kept; ``Friend`` and ``Private``
    functions are not callable from outside the package.
    """
    functions: list[PublicFunction] = []
    for module_name, module in normalized_modules.items():
        if not isinstance(module, Mapping):
            continue
        exposed = module.get("exposedFunctions", module.get("exposed_functions")) or {}
        for func_name, func in exposed.items():
            if not isinstance(func, Mapping) or func.get("visibility") != "Public":
                continue
            functions.append(PublicFunction(
                module=module_name,
                name=func_name,
                params=[normalize_move_type(p) for p in func.get("parameters") or []],
            ))
    return functions


def _short_address(addr: str) -> str:
    addr = addr.lower()
    if addr.startswith("0x"):
        return addr
    return "0x" + (addr.lstrip("0") or "0")


def _full_address(addr: str) -> str:
    return addr.lower().removeprefix("0x").rjust(64, "0")


def extract_package_dependencies(
    module_code: Mapping[str, str] | Iterable[str],
    package_id: str | None = None,
    normalized_modules: Mapping[str, Any] | None = None,
) -> list[str]:
    """External package addresses referenced by a package.

    Addresses come from ``0x…::`` references and 64-hex-digit forms in the
    disassembled text, plus each module's ``friends`` entries. The package
    itself is excluded. Short ``0x`` form, first-seen order.
    """
    own = _full_address(package_id) if package_id else None
    deps: dict[str, None] = {}

    def add(addr: str) -> None:
        short = _short_address(addr)
        if own is not None and _full_address(short) == own:
            return
        deps.setdefault(short, None)

    for module in (normalized_modules or {}).values():
        if not isinstance(module, Mapping):
            continue
        for friend in module.get("friends") or []:
            if isinstance(friend, Mapping) and friend.get("address"):
                add(str(friend["address"]))

    texts = module_code.values() if isinstance(module_code, Mapping) else module_code
    for text in texts:
        for pattern in _DEP_PATTERNS:
            for m in pattern.finditer(text):
                add(m.group(1))

    return list(deps)
