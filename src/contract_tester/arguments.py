"""Argument generation for synthesized contract calls.

Three policies map each parameter's ``TypeTag`` to a call argument:

- **safe**: fixed, known-good values (deterministic).
- **boundary**: minimum or maximum representable integers; non-integer
  parameters fall back to the safe value (deterministic).
- **fuzz**: freshly sampled random values (non-deterministic unless a seeded
  ``random.Random`` is supplied).

Values are returned in the form the chain client encodes directly: Python
``int`` for integers, checksummed ``str`` for addresses, ``bool``, ``str``,
and ``0x``-prefixed hex strings for byte types. A tag outside the supported
vocabulary yields the ``"0"`` placeholder and never raises.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
import random
import string
from typing import Any

from eth_utils import encode_hex, keccak, to_checksum_address

from contract_tester.models import InputParameter, TypeKind, TypeTag

PLACEHOLDER: str = "0"
"""Value emitted for parameters whose type cannot be generated."""

ONE_UNIT: int = 10**18
"""One whole token at 18 decimals."""

SAFE_ADDRESS: str = "0x0000000000000000000000000000000000000001"
SAFE_STRING: str = "Test String"
SAFE_DYNAMIC_BYTES: str = "0x00"
_SAFE_HASH_SEED: str = "test"

_FUZZ_UNIT_CEILING = 1000
_SMALL_UINT_WIDTH = 8
_FUZZ_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


class Bound(StrEnum):
    """Which end of an integer range a boundary pass uses."""

    MIN = "min"
    MAX = "max"


# ---------------------------------------------------------------------------
# Safe values
# ---------------------------------------------------------------------------


def safe_value(tag: TypeTag) -> Any:
    """Return the fixed safe argument for *tag*."""
    if tag.kind == TypeKind.UINT:
        return ONE_UNIT if tag.size == 256 else 1
    if tag.kind == TypeKind.INT:
        return 0
    if tag.kind == TypeKind.ADDRESS:
        return SAFE_ADDRESS
    if tag.kind == TypeKind.STRING:
        return SAFE_STRING
    if tag.kind == TypeKind.BOOL:
        return True
    if tag.kind == TypeKind.BYTES:
        return SAFE_DYNAMIC_BYTES
    if tag.kind == TypeKind.FIXED_BYTES and tag.size is not None:
        return encode_hex(keccak(text=_SAFE_HASH_SEED)[: tag.size])
    return PLACEHOLDER


def safe_args(inputs: Sequence[InputParameter]) -> tuple[Any, ...]:
    """Generate safe arguments for every parameter, in order."""
    return tuple(safe_value(p.type_tag) for p in inputs)


# ---------------------------------------------------------------------------
# Boundary values
# ---------------------------------------------------------------------------


def boundary_value(tag: TypeTag, bound: Bound) -> Any:
    """Return the *bound* extreme of an integer tag, else its safe value."""
    if not tag.is_integer:
        return safe_value(tag)
    return tag.min_value if bound == Bound.MIN else tag.max_value


def boundary_args(inputs: Sequence[InputParameter], bound: Bound) -> tuple[Any, ...]:
    """Generate boundary arguments for every parameter, in order.

    Args:
        inputs: Function parameters.
        bound: Whether integers take their minimum or maximum value.

    Returns:
        Argument tuple matching *inputs*.
    """
    return tuple(boundary_value(p.type_tag, bound) for p in inputs)


# ---------------------------------------------------------------------------
# Fuzz values
# ---------------------------------------------------------------------------


def _fuzz_uint(width: int, rng: random.Random) -> int:
    if width == 256:
        return rng.randrange(_FUZZ_UNIT_CEILING) * ONE_UNIT
    if width <= _SMALL_UINT_WIDTH:
        return rng.randrange(min(256, 2**width))
    return rng.randrange(2**width)


def random_address(rng: random.Random) -> str:
    """Return a random checksummed 20-byte address."""
    return to_checksum_address(encode_hex(rng.randbytes(20)))


def fuzz_value(tag: TypeTag, rng: random.Random) -> Any:
    """Draw a fresh random argument for *tag*.

    Args:
        tag: Parameter type.
        rng: Random source.

    Returns:
        A random value of the right shape, or the placeholder for
        unsupported types.
    """
    if tag.kind == TypeKind.UINT and tag.size is not None:
        return _fuzz_uint(tag.size, rng)
    if tag.kind == TypeKind.INT and tag.size is not None:
        return rng.randrange(tag.min_value, tag.max_value + 1)
    if tag.kind == TypeKind.ADDRESS:
        return random_address(rng)
    if tag.kind == TypeKind.STRING:
        length = rng.randint(5, 11)
        return "".join(rng.choice(_FUZZ_TOKEN_ALPHABET) for _ in range(length))
    if tag.kind == TypeKind.BOOL:
        return rng.random() > 0.5
    if tag.kind == TypeKind.BYTES:
        return encode_hex(rng.randbytes(32))
    if tag.kind == TypeKind.FIXED_BYTES and tag.size is not None:
        return encode_hex(keccak(rng.randbytes(32))[: tag.size])
    return PLACEHOLDER


def fuzz_args(
    inputs: Sequence[InputParameter],
    rng: random.Random | None = None,
) -> tuple[Any, ...]:
    """Generate random arguments for every parameter, in order.

    Args:
        inputs: Function parameters.
        rng: Random source; a fresh unseeded one when ``None``.

    Returns:
        Argument tuple matching *inputs*.
    """
    source = rng if rng is not None else random.Random()
    return tuple(fuzz_value(p.type_tag, source) for p in inputs)
