"""Test-case synthesis from a contract interface schema.

``CaseSynthesizer`` derives an ordered list of ``TestCase`` objects from a
schema. For each function in declaration order it emits:

1. a read case (pure/view) or a write case (everything else), one step;
2. a boundary case when any parameter is an integer, two steps (min, max);
3. a fuzz case when the function takes parameters, one step.

After the last function, a single integration case chains the first write
function with the first read function, when both exist.

Derivation is pure: the only non-determinism is in identifiers (opaque,
unique) and fuzz arguments. A function whose derivation fails contributes no
cases and does not stop the others.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
import logging
import random
import time
from typing import Any
import uuid

from contract_tester.arguments import Bound, boundary_args, fuzz_args, safe_args
from contract_tester.models import (
    CaseKind,
    FunctionDescriptor,
    TestCase,
    TestStep,
)
from contract_tester.schema import load_schema, parse_function

logger = logging.getLogger(__name__)

_ID_SUFFIX_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"

_CASE_ID_PREFIX: dict[CaseKind, str] = {
    CaseKind.READ: "view",
    CaseKind.WRITE: "write",
    CaseKind.BOUNDARY: "boundary",
    CaseKind.FUZZ: "fuzz",
    CaseKind.INTEGRATION: "integration",
}

SUCCESS_EXPECTATIONS: dict[CaseKind, str] = {
    CaseKind.READ: "Function should return a valid response",
    CaseKind.WRITE: "Transaction should be successful and state should be updated",
    CaseKind.BOUNDARY: "Function should handle boundary values correctly",
    CaseKind.FUZZ: "Function should handle unexpected inputs gracefully",
    CaseKind.INTEGRATION: "State change should be reflected in read operation",
}


def _unique_id(prefix: str) -> str:
    """Return ``{prefix}-{epoch_ms}-{9 base36 chars}``.

    Identifiers only need to be unique; nothing compares or orders them.
    """
    value = uuid.uuid4().int
    suffix = []
    for _ in range(9):
        value, digit = divmod(value, 36)
        suffix.append(_ID_SUFFIX_ALPHABET[digit])
    return f"{prefix}-{time.time_ns() // 1_000_000}-{''.join(suffix)}"


def _call_step(
    prefix: str,
    function: FunctionDescriptor,
    contract_address: str,
    args: tuple[Any, ...],
    description: str,
) -> TestStep:
    return TestStep(
        id=_unique_id(prefix),
        contract_address=contract_address,
        method=function.name,
        signature=function.signature,
        args=args,
        read_only=function.is_read_only,
        description=description,
    )


class CaseSynthesizer:
    """Derives test cases from an interface schema.

    Holds no state between calls, so one instance may serve any number of
    schemas, including concurrently.
    """

    # -- single-function cases ---------------------------------------------

    def read_case(self, function: FunctionDescriptor, address: str) -> TestCase:
        """Build the read case for a pure/view function."""
        return TestCase(
            id=_unique_id(_CASE_ID_PREFIX[CaseKind.READ]),
            name=f"Read Test: {function.name}",
            description=f"Verify read operation for {function.name} function",
            kind=CaseKind.READ,
            steps=(
                _call_step(
                    "step",
                    function,
                    address,
                    safe_args(function.inputs),
                    f"Call {function.name} with safe parameters",
                ),
            ),
            expected_result=SUCCESS_EXPECTATIONS[CaseKind.READ],
        )

    def write_case(self, function: FunctionDescriptor, address: str) -> TestCase:
        """Build the write case for a state-changing function."""
        return TestCase(
            id=_unique_id(_CASE_ID_PREFIX[CaseKind.WRITE]),
            name=f"Write Test: {function.name}",
            description=f"Verify state change for {function.name} function",
            kind=CaseKind.WRITE,
            steps=(
                _call_step(
                    "step",
                    function,
                    address,
                    safe_args(function.inputs),
                    f"Execute {function.name} with valid parameters",
                ),
            ),
            expected_result=SUCCESS_EXPECTATIONS[CaseKind.WRITE],
        )

    def boundary_case(self, function: FunctionDescriptor, address: str) -> TestCase:
        """Build the two-step min/max boundary case."""
        return TestCase(
            id=_unique_id(_CASE_ID_PREFIX[CaseKind.BOUNDARY]),
            name=f"Boundary Test: {function.name}",
            description=f"Test boundary conditions for {function.name} function",
            kind=CaseKind.BOUNDARY,
            steps=(
                _call_step(
                    "step-min",
                    function,
                    address,
                    boundary_args(function.inputs, Bound.MIN),
                    f"Test {function.name} with minimum values",
                ),
                _call_step(
                    "step-max",
                    function,
                    address,
                    boundary_args(function.inputs, Bound.MAX),
                    f"Test {function.name} with maximum values",
                ),
            ),
            expected_result=SUCCESS_EXPECTATIONS[CaseKind.BOUNDARY],
        )

    def fuzz_case(
        self,
        function: FunctionDescriptor,
        address: str,
        rng: random.Random | None = None,
    ) -> TestCase:
        """Build the single-step fuzz case with freshly sampled arguments."""
        return TestCase(
            id=_unique_id(_CASE_ID_PREFIX[CaseKind.FUZZ]),
            name=f"Fuzzing Test: {function.name}",
            description=(
                f"Fuzz testing for {function.name} function with random inputs"
            ),
            kind=CaseKind.FUZZ,
            steps=(
                _call_step(
                    "step-fuzz",
                    function,
                    address,
                    fuzz_args(function.inputs, rng),
                    f"Test {function.name} with fuzzed inputs",
                ),
            ),
            expected_result=SUCCESS_EXPECTATIONS[CaseKind.FUZZ],
        )

    def cases_for_function(
        self,
        function: FunctionDescriptor,
        address: str,
        rng: random.Random | None = None,
    ) -> list[TestCase]:
        """Derive every per-function case in rule order.

        Args:
            function: The function to derive cases for.
            address: Contract address under test.
            rng: Random source for fuzz arguments.

        Returns:
            The read or write case, then boundary and fuzz cases if they apply.
        """
        cases = [
            self.read_case(function, address)
            if function.is_read_only
            else self.write_case(function, address)
        ]
        if function.has_integer_input:
            cases.append(self.boundary_case(function, address))
        if function.inputs:
            cases.append(self.fuzz_case(function, address, rng))
        return cases

    # -- schema-level cases ------------------------------------------------

    def integration_case(
        self,
        functions: Iterable[FunctionDescriptor],
        address: str,
    ) -> TestCase | None:
        """Build the write-then-read integration case.

        Uses the first state-changing and the first read-only function in
        declaration order.

        Returns:
            The case, or ``None`` if the schema lacks either kind of function.
        """
        writer: FunctionDescriptor | None = None
        reader: FunctionDescriptor | None = None
        for function in functions:
            if function.is_read_only:
                reader = reader or function
            else:
                writer = writer or function
        if writer is None or reader is None:
            return None

        return TestCase(
            id=_unique_id(_CASE_ID_PREFIX[CaseKind.INTEGRATION]),
            name="State Change Verification",
            description=(
                "Verify state changes through write operations and confirm "
                "with read operations"
            ),
            kind=CaseKind.INTEGRATION,
            steps=(
                _call_step(
                    "step-write",
                    writer,
                    address,
                    safe_args(writer.inputs),
                    f"Execute {writer.name} to modify state",
                ),
                _call_step(
                    "step-read",
                    reader,
                    address,
                    safe_args(reader.inputs),
                    f"Verify state change using {reader.name}",
                ),
            ),
            expected_result=SUCCESS_EXPECTATIONS[CaseKind.INTEGRATION],
        )

    def iter_cases(
        self,
        schema: Iterable[FunctionDescriptor | dict[str, Any]],
        target_address: str,
        rng: random.Random | None = None,
    ) -> Iterator[TestCase]:
        """Lazily derive test cases from a schema.

        Each entry is processed behind its own fault barrier: a malformed
        entry, or one whose derivation raises, is logged and contributes no
        cases. Non-function entries are ignored.

        Args:
            schema: Raw ABI entries and/or parsed descriptors.
            target_address: Contract address every step targets.
            rng: Random source for fuzz arguments.

        Yields:
            Test cases, all ``pending``, in synthesis order.
        """
        derived: list[FunctionDescriptor] = []
        for index, entry in enumerate(schema):
            try:
                function = parse_function(entry)
                if function is None:
                    continue
                cases = self.cases_for_function(function, target_address, rng)
            except Exception as exc:
                logger.warning("Skipping schema entry %d: %s", index, exc)
                continue
            derived.append(function)
            logger.debug("Derived %d cases for %s", len(cases), function.signature)
            yield from cases

        integration = self.integration_case(derived, target_address)
        if integration is not None:
            yield integration

    def synthesize(
        self,
        schema: Iterable[FunctionDescriptor | dict[str, Any]],
        target_address: str,
        rng: random.Random | None = None,
    ) -> list[TestCase]:
        """Derive the full, ordered list of test cases for a schema.

        Args:
            schema: Raw ABI entries and/or parsed descriptors.
            target_address: Contract address every step targets.
            rng: Random source for fuzz arguments.

        Returns:
            All derived cases in synthesis order.
        """
        cases = list(self.iter_cases(schema, target_address, rng))
        logger.info("Synthesized %d test cases for %s", len(cases), target_address)
        return cases

    def synthesize_json(
        self,
        schema_text: str,
        target_address: str,
        rng: random.Random | None = None,
    ) -> list[TestCase]:
        """Parse ABI JSON text and derive its test cases.

        Raises:
            SchemaFormatError: If *schema_text* is not a JSON ABI.
        """
        return self.synthesize(load_schema(schema_text), target_address, rng)


# Module-level shared instance; constructing a new one is equally valid.
_singleton_synthesizer: CaseSynthesizer | None = None


def get_synthesizer() -> CaseSynthesizer:
    """Return the shared ``CaseSynthesizer`` instance."""
    global _singleton_synthesizer  # noqa: PLW0603
    if _singleton_synthesizer is None:
        _singleton_synthesizer = CaseSynthesizer()
    return _singleton_synthesizer
