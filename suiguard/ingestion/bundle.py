"""Load package bundles and model findings from disk.

A bundle is a JSON document holding everything one assessment needs::

    {
      "package_id": "0xabc...",
      "modules": {"vault": "<disassembled text>", ...},
      "functions": [{"module": "vault", "name": "withdraw", "params": [...]}]
    }

``normalized_modules`` (the node's normalized-module payload) may be
given instead of ``functions``; public functions are then derived from it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from suiguard.core.types import AnalyzerResponse, PublicFunction
from suiguard.ingestion.normalizer import (
    extract_package_dependencies,
    extract_public_functions,
)

logger = logging.getLogger(__name__)


class BundleError(ValueError):
    """Raised when a bundle or findings file cannot be used."""


class PackageBundle(BaseModel):
    """Raw inputs for one package assessment."""

    package_id: str = ""
    modules: dict[str, str] = Field(default_factory=dict)
    functions: list[PublicFunction] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)


def _read_json(path: str | Path) -> Any:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise BundleError(f"Cannot read {p}: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise BundleError(f"Invalid JSON in {p}: {exc}") from exc


def parse_bundle(data: Any) -> PackageBundle:
    """Build a :class:`PackageBundle` from decoded JSON."""
    if not isinstance(data, dict):
        raise BundleError("Bundle must be a JSON object")

    payload = dict(data)
    normalized = payload.pop("normalized_modules", None)
    if "functions" not in payload and isinstance(normalized, dict):
        payload["functions"] = extract_public_functions(normalized)

    try:
        bundle = PackageBundle.model_validate(payload)
    except ValidationError as exc:
        raise BundleError(f"Invalid bundle: {exc}") from exc

    if not bundle.dependencies:
        bundle.dependencies = extract_package_dependencies(
            bundle.modules,
            package_id=bundle.package_id or None,
            normalized_modules=normalized if isinstance(normalized, dict) else None,
        )
    return bundle


def load_bundle(path: str | Path) -> PackageBundle:
    bundle = parse_bundle(_read_json(path))
    logger.debug(
        "Loaded bundle %s: %d module(s), %d public function(s)",
        path, len(bundle.modules), len(bundle.functions),
    )
    return bundle


def load_model_findings(path: str | Path) -> AnalyzerResponse:
    """Load model findings, either ``{"technical_findings": [...]}`` or a bare list."""
    data = _read_json(path)
    if isinstance(data, list):
        data = {"technical_findings": data}
    try:
        return AnalyzerResponse.model_validate(data)
    except ValidationError as exc:
        raise BundleError(f"Invalid findings file: {exc}") from exc
