"""Tests for ABI parsing (load_schema, parse_function, iter_functions)."""

from __future__ import annotations

import json
import logging
from typing import Any

from contract_tester.models import FunctionDescriptor, Mutability, TypeKind
from contract_tester.schema import (
    SchemaEntryError,
    SchemaFormatError,
    iter_functions,
    load_schema,
    parse_function,
)
import pytest

from tests.conftest import BALANCE_OF, TRANSFER, TRANSFER_EVENT, make_function


@pytest.mark.unit
class TestLoadSchema:
    """load_schema accepts JSON ABI documents and rejects everything else."""

    def test_bare_array(self) -> None:
        """A bare ABI array is returned as-is."""
        entries = load_schema(json.dumps([BALANCE_OF, TRANSFER]))
        assert [e["name"] for e in entries] == ["balanceOf", "transfer"]

    def test_compiler_artifact(self) -> None:
        """An artifact object contributes its ``abi`` array."""
        artifact = {"contractName": "Token", "abi": [TRANSFER], "bytecode": "0x"}
        entries = load_schema(json.dumps(artifact))
        assert entries == [TRANSFER]

    def test_empty_array(self) -> None:
        """An empty ABI is valid and has no entries."""
        assert load_schema("[]") == []

    def test_not_json(self) -> None:
        """Non-JSON text raises SchemaFormatError with the user message."""
        with pytest.raises(SchemaFormatError, match="Invalid ABI format"):
            load_schema("not json at all")

    @pytest.mark.parametrize("text", ['{"name": "x"}', "42", '"abi"', "null"])
    def test_not_an_array(self, text: str) -> None:
        """JSON that is not an ABI array is rejected."""
        with pytest.raises(SchemaFormatError, match="expected a JSON array"):
            load_schema(text)

    def test_format_error_is_value_error(self) -> None:
        """SchemaFormatError is a ValueError."""
        assert issubclass(SchemaFormatError, ValueError)


@pytest.mark.unit
class TestParseFunction:
    """parse_function converts one entry to a descriptor."""

    def test_view_function(self) -> None:
        """A view function keeps its name, mutability and input types."""
        fn = make_function(BALANCE_OF)
        assert fn.name == "balanceOf"
        assert fn.mutability == Mutability.VIEW
        assert fn.is_read_only
        assert [p.type_tag.kind for p in fn.inputs] == [TypeKind.ADDRESS]
        assert fn.inputs[0].name == "owner"

    def test_nonpayable_function(self) -> None:
        """transfer is a writer with an address and a uint256 input."""
        fn = make_function(TRANSFER)
        assert not fn.is_read_only
        assert fn.signature == "transfer(address,uint256)"

    @pytest.mark.parametrize(
        "entry_type", ["event", "error", "constructor", "fallback", "receive"]
    )
    def test_non_functions_return_none(self, entry_type: str) -> None:
        """Non-function entries are not descriptors."""
        assert parse_function({"type": entry_type, "name": "X", "inputs": []}) is None

    def test_event_fixture_is_skipped(self) -> None:
        """The Transfer event yields no descriptor."""
        assert parse_function(TRANSFER_EVENT) is None

    def test_missing_type_defaults_to_function(self) -> None:
        """Entries without ``type`` are functions."""
        fn = parse_function({"name": "ping", "stateMutability": "pure", "inputs": []})
        assert fn is not None
        assert fn.mutability == Mutability.PURE

    def test_missing_inputs_means_no_parameters(self) -> None:
        """An entry without ``inputs`` has no parameters."""
        fn = parse_function({"type": "function", "name": "ping", "stateMutability": "view"})
        assert fn is not None
        assert fn.inputs == ()

    @pytest.mark.parametrize(
        ("flags", "expected"),
        [
            ({"constant": True}, Mutability.VIEW),
            ({"constant": False, "payable": True}, Mutability.PAYABLE),
            ({"constant": False, "payable": False}, Mutability.NONPAYABLE),
            ({}, Mutability.NONPAYABLE),
            ({"stateMutability": "bogus", "constant": True}, Mutability.VIEW),
        ],
    )
    def test_legacy_mutability_flags(
        self, flags: dict[str, Any], expected: Mutability
    ) -> None:
        """Older ABIs without stateMutability use constant/payable flags."""
        entry = {"type": "function", "name": "f", "inputs": [], **flags}
        fn = parse_function(entry)
        assert fn is not None
        assert fn.mutability == expected

    def test_unknown_parameter_type_is_kept(self) -> None:
        """Unsupported parameter types parse as UNKNOWN rather than failing."""
        entry = {
            "type": "function",
            "name": "batch",
            "stateMutability": "nonpayable",
            "inputs": [{"name": "ids", "type": "uint256[]"}],
        }
        fn = make_function(entry)
        assert fn.inputs[0].type_tag.kind == TypeKind.UNKNOWN
        assert fn.signature == "batch(uint256[])"

    def test_descriptor_passes_through(self) -> None:
        """An already-parsed descriptor is returned unchanged."""
        fn = make_function(BALANCE_OF)
        assert parse_function(fn) is fn

    @pytest.mark.parametrize(
        "entry",
        [
            "balanceOf",
            42,
            {"type": "function", "inputs": []},
            {"type": "function", "name": "", "inputs": []},
            {"type": "function", "name": "f", "inputs": "address"},
            {"type": "function", "name": "f", "inputs": ["address"]},
            {"type": "function", "name": "f", "inputs": [{"name": "a"}]},
            {"type": "function", "name": "f", "inputs": [{"name": "a", "type": ""}]},
        ],
    )
    def test_malformed_entries_raise(self, entry: Any) -> None:
        """Malformed function entries raise SchemaEntryError."""
        with pytest.raises(SchemaEntryError):
            parse_function(entry)


@pytest.mark.unit
class TestIterFunctions:
    """iter_functions isolates each entry."""

    def test_yields_functions_in_order(self) -> None:
        """Functions are yielded in declaration order, events skipped."""
        names = [fn.name for fn in iter_functions([BALANCE_OF, TRANSFER_EVENT, TRANSFER])]
        assert names == ["balanceOf", "transfer"]

    def test_malformed_entry_is_skipped_and_logged(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A broken entry is logged and the rest still parse."""
        entries = [BALANCE_OF, {"type": "function"}, TRANSFER]
        with caplog.at_level(logging.WARNING, logger="contract_tester.schema"):
            result = list(iter_functions(entries))
        assert [fn.name for fn in result] == ["balanceOf", "transfer"]
        assert "Skipping malformed schema entry 1" in caplog.text

    def test_is_lazy(self) -> None:
        """Entries are consumed one at a time."""
        gen = iter_functions(iter([BALANCE_OF, TRANSFER]))
        first = next(gen)
        assert isinstance(first, FunctionDescriptor)
        assert first.name == "balanceOf"
