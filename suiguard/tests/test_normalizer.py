"""Tests for suiguard.ingestion.normalizer — normalized-module JSON handling."""

from __future__ import annotations

import pytest

from suiguard.core.types import Param, ParamKind
from suiguard.ingestion.normalizer import (
    extract_package_dependencies,
    extract_public_functions,
    normalize_move_type,
)

COIN_STRUCT = {
    "Struct": {
        "address": "0x2",
        "module": "coin",
        "name": "Coin",
        "typeArguments": [{"TypeParameter": 0}],
    }
}


class TestNormalizeMoveType:

    def test_primitive(self):
        assert normalize_move_type("U64") == Param(kind=ParamKind.PRIMITIVE, type="U64")

    def test_struct_with_type_arguments(self):
        param = normalize_move_type({
            "Struct": {
                "address": "0x2",
                "module": "coin",
                "name": "Coin",
                "typeArguments": [
                    {"Struct": {"address": "0x2", "module": "sui", "name": "SUI", "typeArguments": []}},
                ],
            }
        })
        assert param.kind == ParamKind.STRUCT
        assert param.value == "0x2::coin::Coin"
        assert param.type_args == ["0x2::sui::SUI"]

    def test_type_parameter_argument_rendered_as_json(self):
        param = normalize_move_type(COIN_STRUCT)
        assert param.type_args == ['{"TypeParameter":0}']

    def test_mutable_reference_to_struct(self):
        param = normalize_move_type({"MutableReference": COIN_STRUCT})
        assert param.kind == ParamKind.REFERENCE
        assert param.type == "struct"
        assert param.value == "0x2::coin::Coin"
        assert param.mutable is True
        assert param.is_mutable_reference

    def test_immutable_reference_to_primitive(self):
        param = normalize_move_type({"Reference": "Address"})
        assert (param.kind, param.type, param.mutable) == (ParamKind.REFERENCE, "Address", False)

    def test_nested_reference_collapses(self):
        param = normalize_move_type({"Reference": {"MutableReference": COIN_STRUCT}})
        assert param.kind == ParamKind.REFERENCE
        assert param.mutable is True
        assert param.value == "0x2::coin::Coin"

    def test_vector(self):
        param = normalize_move_type({"Vector": "U8"})
        assert param.kind == ParamKind.VECTOR
        assert param.value == Param(kind=ParamKind.PRIMITIVE, type="U8")

    def test_reference_to_vector(self):
        param = normalize_move_type({"Reference": {"Vector": "U8"}})
        assert (param.kind, param.type) == (ParamKind.REFERENCE, "vector")
        assert param.value == Param(kind=ParamKind.PRIMITIVE, type="U8")

    def test_type_parameter(self):
        assert normalize_move_type({"TypeParameter": 1}) == Param(
            kind=ParamKind.TYPE_PARAMETER, value=1,
        )

    @pytest.mark.parametrize("raw", [{"Weird": 1}, 7, None])
    def test_unknown_shapes(self, raw):
        assert normalize_move_type(raw).kind == ParamKind.UNKNOWN

    def test_vector_type_argument(self):
        param = normalize_move_type({
            "Struct": {
                "address": "0x1",
                "module": "table",
                "name": "Table",
                "type_arguments": [{"Vector": "U8"}, {"Address": "0x5"}],
            }
        })
        assert param.type_args == ["vector<U8>", "Address(0x5)"]

    def test_signature_text_is_compact_json(self):
        text = normalize_move_type({"MutableReference": COIN_STRUCT}).signature_text()
        assert '"kind":"reference"' in text
        assert '"typeArgs":["{\\"TypeParameter\\":0}"]' in text


class TestExtractPublicFunctions:

    def test_only_public_functions(self):
        modules = {
            "vault": {
                "exposedFunctions": {
                    "withdraw": {"visibility": "Public", "parameters": [{"MutableReference": COIN_STRUCT}, "U64"]},
                    "internal": {"visibility": "Friend", "parameters": []},
                    "helper": {"visibility": "Private", "parameters": []},
                }
            },
            "oracle": {"exposed_functions": {"price": {"visibility": "Public"}}},
        }
        functions = extract_public_functions(modules)
        assert [f.qualified_name for f in functions] == ["vault::withdraw", "oracle::price"]
        assert functions[0].params[1] == Param(kind=ParamKind.PRIMITIVE, type="U64")
        assert functions[1].params == []

    def test_malformed_modules_skipped(self):
        assert extract_public_functions({"a": "nope", "b": {}}) == []


class TestExtractPackageDependencies:

    def test_addresses_in_text(self):
        code = {
            "m": "use 0x2::coin;\nCall 0x1::option::some<u64>\nCall 0x2::transfer::public_transfer",
        }
        assert extract_package_dependencies(code) == ["0x2", "0x1"]

    def test_own_package_excluded(self):
        code = {"m": "0xabc::vault::Vault\n0x2::coin::Coin"}
        assert extract_package_dependencies(code, package_id="0xabc") == ["0x2"]

    def test_full_width_addresses(self):
        full = "0" * 63 + "2"
        code = {"m": f"use {full}::coin;"}
        assert extract_package_dependencies(code) == ["0x2"]

    def test_own_package_excluded_across_forms(self):
        full = "0" * 61 + "abc"
        code = {"m": f"{full}::vault::Vault"}
        assert extract_package_dependencies(code, package_id="0xabc") == []

    def test_friends(self):
        normalized = {"m": {"friends": [{"address": "0x7", "name": "pool"}]}}
        assert extract_package_dependencies({}, normalized_modules=normalized) == ["0x7"]

    def test_no_references(self):
        assert extract_package_dependencies({"m": "module m {}"}) == []
