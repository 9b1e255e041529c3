"""Interface-schema parsing: ABI JSON to ``FunctionDescriptor`` objects.

Two failure classes are kept apart here. A document that is not a JSON ABI
at all is fatal and raises ``SchemaFormatError`` before anything is derived.
A single malformed function entry raises ``SchemaEntryError`` from
``parse_function``; ``iter_functions`` logs it and moves on to the next entry.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
import json
import logging
from typing import Any

from contract_tester.models import (
    FunctionDescriptor,
    InputParameter,
    Mutability,
    TypeTag,
)

logger = logging.getLogger(__name__)

_INVALID_ABI_MESSAGE = "Invalid ABI format. Please provide a valid JSON ABI."


class SchemaFormatError(ValueError):
    """The interface schema document is not valid structured ABI data."""


class SchemaEntryError(ValueError):
    """A single function entry in the schema is malformed."""


def load_schema(text: str) -> list[dict[str, Any]]:
    """Parse ABI JSON text into a list of raw entries.

    Accepts either a bare ABI array or a compiler artifact object with an
    ``"abi"`` array (Hardhat and Foundry both emit this shape).

    Args:
        text: JSON document.

    Returns:
        The raw ABI entries, in declaration order.

    Raises:
        SchemaFormatError: If the text is not JSON or not an ABI array.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        msg = f"{_INVALID_ABI_MESSAGE} ({exc})"
        raise SchemaFormatError(msg) from exc

    if isinstance(data, dict) and "abi" in data:
        data = data["abi"]

    if not isinstance(data, list):
        msg = f"{_INVALID_ABI_MESSAGE} (expected a JSON array, got {type(data).__name__})"
        raise SchemaFormatError(msg)

    return data


def _resolve_mutability(entry: Mapping[str, Any]) -> Mutability:
    """Read the mutability of an entry, honouring pre-0.4.16 ABI flags."""
    raw = entry.get("stateMutability")
    if raw is not None:
        try:
            return Mutability(str(raw))
        except ValueError:
            logger.debug("Unrecognized stateMutability %r; using legacy flags", raw)
    if entry.get("constant") is True:
        return Mutability.VIEW
    if entry.get("payable") is True:
        return Mutability.PAYABLE
    return Mutability.NONPAYABLE


def _parse_input(raw: Any, position: int) -> InputParameter:
    if not isinstance(raw, Mapping):
        msg = f"input {position} is not an object"
        raise SchemaEntryError(msg)
    if "type" not in raw or raw["type"] in (None, ""):
        msg = f"input {position} has no type"
        raise SchemaEntryError(msg)
    return InputParameter(
        name=str(raw.get("name") or ""),
        type_tag=TypeTag.parse(str(raw["type"])),
    )


def parse_function(entry: Any) -> FunctionDescriptor | None:
    """Convert one raw ABI entry into a ``FunctionDescriptor``.

    Args:
        entry: A single item of the ABI array.

    Returns:
        The descriptor, or ``None`` for non-function entries (events,
        errors, constructors, fallback and receive).

    Raises:
        SchemaEntryError: If the entry claims to be a function but is malformed.
    """
    if isinstance(entry, FunctionDescriptor):
        return entry
    if not isinstance(entry, Mapping):
        msg = f"entry is not an object: {type(entry).__name__}"
        raise SchemaEntryError(msg)

    # Solidity ABIs default a missing "type" to "function".
    if entry.get("type", "function") != "function":
        return None

    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        msg = "function entry has no name"
        raise SchemaEntryError(msg)

    raw_inputs = entry.get("inputs", [])
    if not isinstance(raw_inputs, list):
        msg = f"function {name!r} has non-list inputs"
        raise SchemaEntryError(msg)

    inputs = tuple(_parse_input(raw, i) for i, raw in enumerate(raw_inputs))
    return FunctionDescriptor(
        name=name,
        mutability=_resolve_mutability(entry),
        inputs=inputs,
    )


def iter_functions(entries: Iterable[Any]) -> Iterator[FunctionDescriptor]:
    """Lazily yield the function descriptors of a schema.

    Each entry is converted independently: malformed entries are logged and
    skipped, non-function entries are skipped silently.

    Args:
        entries: Raw ABI entries or already-parsed descriptors.

    Yields:
        Descriptors in declaration order.
    """
    for index, entry in enumerate(entries):
        try:
            descriptor = parse_function(entry)
        except ValueError as exc:  # SchemaEntryError or pydantic ValidationError
            logger.warning("Skipping malformed schema entry %d: %s", index, exc)
            continue
        if descriptor is not None:
            yield descriptor
