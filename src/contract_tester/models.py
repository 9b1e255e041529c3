"""Core data models for contract-tester.

Defines the shared Pydantic models and enums used by the synthesizer, the
executor and the suite runner: interface-schema descriptors, test steps and
cases, execution results, and runner configuration.

Every model is frozen. ``TestCase`` keeps its ``status`` and
``actual_result`` in private attributes exposed as read-only properties; the
executor advances them in place only through the ``mark_*`` transition
methods.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
import re
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    computed_field,
    field_validator,
)

# ---------------------------------------------------------------------------
# Interface schema
# ---------------------------------------------------------------------------


class Mutability(StrEnum):
    """State mutability annotation of a contract function."""

    PURE = "pure"
    VIEW = "view"
    NONPAYABLE = "nonpayable"
    PAYABLE = "payable"

    @property
    def is_read_only(self) -> bool:
        """Whether functions with this mutability only read state."""
        return self in (Mutability.PURE, Mutability.VIEW)


class TypeKind(StrEnum):
    """Value-generation family of an ABI parameter type."""

    UINT = "uint"
    INT = "int"
    ADDRESS = "address"
    BOOL = "bool"
    STRING = "string"
    FIXED_BYTES = "fixed_bytes"
    BYTES = "bytes"
    UNKNOWN = "unknown"


_INTEGER_PATTERN: re.Pattern[str] = re.compile(r"^(u?int)(\d*)$")
_FIXED_BYTES_PATTERN: re.Pattern[str] = re.compile(r"^bytes(\d+)$")

_SIMPLE_KINDS: dict[str, TypeKind] = {
    "address": TypeKind.ADDRESS,
    "bool": TypeKind.BOOL,
    "string": TypeKind.STRING,
    "bytes": TypeKind.BYTES,
}


class TypeTag(BaseModel):
    """Resolved type of a single function parameter.

    Attributes:
        kind: Generation family the type belongs to.
        size: Bit width for integers, byte length for fixed bytes, else None.
        raw: The ABI type string the tag was resolved from.
    """

    model_config = ConfigDict(frozen=True)

    kind: TypeKind
    size: int | None = None
    raw: str

    @classmethod
    def parse(cls, raw: str) -> TypeTag:
        """Resolve an ABI type string to exactly one tag.

        Never raises: anything outside the supported vocabulary (arrays,
        tuples, out-of-range widths) resolves to ``TypeKind.UNKNOWN``.

        Args:
            raw: ABI type string such as ``"uint256"`` or ``"bytes32"``.

        Returns:
            The resolved ``TypeTag``.
        """
        text = str(raw).strip()

        if text in _SIMPLE_KINDS:
            return cls(kind=_SIMPLE_KINDS[text], raw=text)

        match = _INTEGER_PATTERN.match(text)
        if match:
            width = int(match.group(2)) if match.group(2) else 256
            if width % 8 == 0 and 8 <= width <= 256:
                kind = TypeKind.UINT if match.group(1) == "uint" else TypeKind.INT
                return cls(kind=kind, size=width, raw=text)
            return cls(kind=TypeKind.UNKNOWN, raw=text)

        match = _FIXED_BYTES_PATTERN.match(text)
        if match and 1 <= int(match.group(1)) <= 32:
            return cls(kind=TypeKind.FIXED_BYTES, size=int(match.group(1)), raw=text)

        return cls(kind=TypeKind.UNKNOWN, raw=text)

    @property
    def is_integer(self) -> bool:
        """Whether the tag is a signed or unsigned integer."""
        return self.kind in (TypeKind.UINT, TypeKind.INT)

    @property
    def min_value(self) -> int:
        """Smallest representable value of an integer tag.

        Raises:
            ValueError: If the tag is not an integer.
        """
        if self.kind == TypeKind.UINT:
            return 0
        if self.kind == TypeKind.INT and self.size is not None:
            return -(2 ** (self.size - 1))
        msg = f"Type {self.raw!r} has no integer range"
        raise ValueError(msg)

    @property
    def max_value(self) -> int:
        """Largest representable value of an integer tag.

        Raises:
            ValueError: If the tag is not an integer.
        """
        if self.kind == TypeKind.UINT and self.size is not None:
            return 2**self.size - 1
        if self.kind == TypeKind.INT and self.size is not None:
            return 2 ** (self.size - 1) - 1
        msg = f"Type {self.raw!r} has no integer range"
        raise ValueError(msg)


class InputParameter(BaseModel):
    """A named, typed input of a contract function.

    Attributes:
        name: Parameter name (may be empty in compiled ABIs).
        type_tag: Resolved parameter type.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    type_tag: TypeTag


class FunctionDescriptor(BaseModel):
    """A callable contract function as declared in the interface schema.

    Attributes:
        name: Function name.
        mutability: State mutability annotation.
        inputs: Ordered input parameters.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    mutability: Mutability
    inputs: tuple[InputParameter, ...] = ()

    @field_validator("name")
    @classmethod
    def _name_must_be_nonempty(cls, v: str) -> str:
        """Validate that the function name is not blank."""
        if not v.strip():
            msg = "Function name must not be empty"
            raise ValueError(msg)
        return v

    @property
    def is_read_only(self) -> bool:
        """Whether the function is pure or view."""
        return self.mutability.is_read_only

    @property
    def signature(self) -> str:
        """Canonical signature, e.g. ``transfer(address,uint256)``."""
        types = ",".join(p.type_tag.raw for p in self.inputs)
        return f"{self.name}({types})"

    @property
    def has_integer_input(self) -> bool:
        """Whether any parameter is a signed or unsigned integer."""
        return any(p.type_tag.is_integer for p in self.inputs)


# ---------------------------------------------------------------------------
# Test cases
# ---------------------------------------------------------------------------


class StepAction(StrEnum):
    """Kind of action a test step performs."""

    CONTRACT_CALL = "contract_call"


class TestStep(BaseModel):
    """A single contract call within a test case.

    Steps are plain data: they describe a call, they do not perform it.

    Attributes:
        id: Opaque unique identifier.
        action: Kind of action (always a contract call).
        contract_address: Address of the contract under test.
        method: Function name.
        signature: Canonical function signature used for ABI encoding.
        args: Argument values in parameter order.
        read_only: Whether the target function is pure/view.
        description: Human-readable description.
    """

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(frozen=True)

    id: str
    action: StepAction = StepAction.CONTRACT_CALL
    contract_address: str
    method: str
    signature: str
    args: tuple[Any, ...] = ()
    read_only: bool = False
    description: str


class CaseKind(StrEnum):
    """Synthesis rule that produced a test case."""

    READ = "read"
    WRITE = "write"
    BOUNDARY = "boundary"
    FUZZ = "fuzz"
    INTEGRATION = "integration"


class TestStatus(StrEnum):
    """Lifecycle state of a test case."""

    __test__ = False  # not a pytest test class

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether the case has finished executing."""
        return self in (TestStatus.PASSED, TestStatus.FAILED)


class InvalidTransitionError(ValueError):
    """Raised on a status change outside pending -> running -> passed/failed."""


_ALLOWED_TRANSITIONS: dict[TestStatus, frozenset[TestStatus]] = {
    TestStatus.PENDING: frozenset({TestStatus.RUNNING}),
    TestStatus.RUNNING: frozenset({TestStatus.PASSED, TestStatus.FAILED}),
    TestStatus.PASSED: frozenset(),
    TestStatus.FAILED: frozenset(),
}


class TestCase(BaseModel):
    """A derived test case and its execution state.

    Fields are frozen and the execution state is read-only. The synthesizer
    creates cases ``pending``; only the executor advances them, via ``mark_running``, ``mark_passed`` and
    ``mark_failed``.

    Attributes:
        id: Opaque unique identifier.
        name: Display name, e.g. ``"Read Test: balanceOf"``.
        description: What the case verifies.
        kind: Synthesis rule that produced the case.
        steps: Ordered, non-empty sequence of steps.
        expected_result: Narrative of the expected outcome (not machine-checked).
        status: Current lifecycle state.
        actual_result: Outcome text once the case is terminal.
    """

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    kind: CaseKind
    steps: tuple[TestStep, ...]
    expected_result: str
    _status: TestStatus = PrivateAttr(default=TestStatus.PENDING)
    _actual_result: str | None = PrivateAttr(default=None)

    @field_validator("steps")
    @classmethod
    def _steps_must_be_nonempty(
        cls, v: tuple[TestStep, ...]
    ) -> tuple[TestStep, ...]:
        """Validate that a case has at least one step."""
        if len(v) < 1:
            msg = "steps must contain at least 1 entry"
            raise ValueError(msg)
        return v

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> TestStatus:
        """Current lifecycle state. Read-only; use the ``mark_*`` methods."""
        return self._status

    @computed_field  # type: ignore[prop-decorator]
    @property
    def actual_result(self) -> str | None:
        """Outcome text once the case is terminal."""
        return self._actual_result

    def _transition(self, new_status: TestStatus) -> None:
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            msg = (
                f"Test case {self.id!r} cannot move from "
                f"{self.status.value!r} to {new_status.value!r}"
            )
            raise InvalidTransitionError(msg)
        self._status = new_status

    def mark_running(self) -> None:
        """Move the case from ``pending`` to ``running``.

        Raises:
            InvalidTransitionError: If the case is not pending.
        """
        self._transition(TestStatus.RUNNING)

    def mark_passed(self, actual_result: str) -> None:
        """Move the case from ``running`` to ``passed``.

        Args:
            actual_result: Outcome narrative to record.

        Raises:
            InvalidTransitionError: If the case is not running.
        """
        self._transition(TestStatus.PASSED)
        self._actual_result = actual_result

    def mark_failed(self, actual_result: str) -> None:
        """Move the case from ``running`` to ``failed``.

        Args:
            actual_result: Fault text to record verbatim.

        Raises:
            InvalidTransitionError: If the case is not running.
        """
        self._transition(TestStatus.FAILED)
        self._actual_result = actual_result


# ---------------------------------------------------------------------------
# Execution results
# ---------------------------------------------------------------------------


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ExecutionResult(BaseModel):
    """Outcome of executing one test case once.

    Attributes:
        test_case_id: Identifier of the executed case.
        success: Whether every step completed without a fault.
        error: Fault text of the failing step, if any.
        logs: One line per attempted step, in order.
        timestamp: Completion time (UTC).
    """

    model_config = ConfigDict(frozen=True)

    test_case_id: str
    success: bool
    error: str | None = None
    logs: tuple[str, ...] = ()
    timestamp: datetime = Field(default_factory=_utc_now)


class TargetValidation(BaseModel):
    """Result of probing a target address for deployed code.

    Attributes:
        is_valid: Whether code is deployed at the address.
        message: Advisory text for the user when invalid.
    """

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    message: str | None = None

    def __bool__(self) -> bool:
        return self.is_valid


# ---------------------------------------------------------------------------
# Configuration & suite output
# ---------------------------------------------------------------------------

_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


class RunnerConfig(BaseModel):
    """Runtime configuration for a test-suite run.

    Attributes:
        network: Network identifier from the network catalogue.
        rpc_url: Optional RPC URL overriding the catalogue endpoint.
        private_key: Hex private key of the signing identity. When unset an
            ephemeral account is generated.
        receipt_timeout_seconds: Maximum seconds to wait for a receipt.
        fuzz_seed: Optional seed making fuzz arguments reproducible.
        log_level: Logging level name.
        log_file: Optional log file path.
    """

    model_config = ConfigDict(frozen=True)

    network: str = "mainnet"
    rpc_url: str | None = None
    private_key: str | None = Field(default=None, repr=False)
    receipt_timeout_seconds: int = 120
    fuzz_seed: int | None = None
    log_level: str = "INFO"
    log_file: str | None = None

    @field_validator("receipt_timeout_seconds")
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        """Validate that the receipt timeout is >= 1."""
        if v < 1:
            msg = "Value must be >= 1"
            raise ValueError(msg)
        return v

    @field_validator("log_level")
    @classmethod
    def _must_be_known_level(cls, v: str) -> str:
        """Validate and normalize the logging level name."""
        level = v.upper()
        if level not in _LOG_LEVELS:
            msg = f"Unknown log level: {v!r}"
            raise ValueError(msg)
        return level


class SuiteResult(BaseModel):
    """Complete result of synthesizing and executing a test suite.

    Attributes:
        network: Network identifier the suite ran against.
        target_address: Contract address under test.
        cases: Test cases in execution order, in their terminal state.
        results: One execution result per case, in the same order.
        duration_seconds: Wall-clock duration of the run.
    """

    model_config = ConfigDict(frozen=True)

    network: str
    target_address: str
    cases: list[TestCase]
    results: list[ExecutionResult]
    duration_seconds: float

    @property
    def passed(self) -> int:
        """Number of successful cases."""
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        """Number of failed cases."""
        return sum(1 for r in self.results if not r.success)
