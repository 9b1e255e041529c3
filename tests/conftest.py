"""Shared fixtures for the contract_tester test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping, Sequence
import json
import logging
from typing import Any

from contract_tester.chain import TransactionRevertedError
from contract_tester.models import (
    CaseKind,
    FunctionDescriptor,
    RunnerConfig,
    TestCase,
    TestStep,
)
from contract_tester.networks import NetworkEndpoint
from contract_tester.schema import parse_function
import pytest

CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
EMPTY_ADDRESS = "0x000000000000000000000000000000000000dEaD"

# ---------------------------------------------------------------------------
# ABI fixtures
# ---------------------------------------------------------------------------

BALANCE_OF: dict[str, Any] = {
    "type": "function",
    "name": "balanceOf",
    "stateMutability": "view",
    "inputs": [{"name": "owner", "type": "address"}],
    "outputs": [{"name": "", "type": "uint256"}],
}

TRANSFER: dict[str, Any] = {
    "type": "function",
    "name": "transfer",
    "stateMutability": "nonpayable",
    "inputs": [
        {"name": "to", "type": "address"},
        {"name": "amount", "type": "uint256"},
    ],
    "outputs": [{"name": "", "type": "bool"}],
}

TOTAL_SUPPLY: dict[str, Any] = {
    "type": "function",
    "name": "totalSupply",
    "stateMutability": "view",
    "inputs": [],
    "outputs": [{"name": "", "type": "uint256"}],
}

TRANSFER_EVENT: dict[str, Any] = {
    "type": "event",
    "name": "Transfer",
    "anonymous": False,
    "inputs": [
        {"name": "from", "type": "address", "indexed": True},
        {"name": "to", "type": "address", "indexed": True},
        {"name": "value", "type": "uint256", "indexed": False},
    ],
}

ERC20_ABI: list[dict[str, Any]] = [BALANCE_OF, TRANSFER]


def make_function(entry: Mapping[str, Any]) -> FunctionDescriptor:
    """Parse a raw ABI function entry, failing loudly if it is not one."""
    descriptor = parse_function(entry)
    assert descriptor is not None
    return descriptor


# ---------------------------------------------------------------------------
# Factory functions (plain functions, importable from conftest)
# ---------------------------------------------------------------------------


def make_step(**overrides: Any) -> TestStep:
    """Build a valid TestStep with sensible defaults.

    Args:
        **overrides: Field values to override.

    Returns:
        A fully constructed TestStep instance.
    """
    defaults: dict[str, Any] = {
        "id": "step-1",
        "contract_address": CONTRACT_ADDRESS,
        "method": "transfer",
        "signature": "transfer(address,uint256)",
        "args": ("0x0000000000000000000000000000000000000001", 10**18),
        "read_only": False,
        "description": "Execute transfer with valid parameters",
    }
    defaults.update(overrides)
    return TestStep(**defaults)


def make_case(**overrides: Any) -> TestCase:
    """Build a valid pending TestCase with sensible defaults.

    Args:
        **overrides: Field values to override.

    Returns:
        A fully constructed TestCase instance.
    """
    defaults: dict[str, Any] = {
        "id": "write-1",
        "name": "Write Test: transfer",
        "description": "Verify state change for transfer function",
        "kind": CaseKind.WRITE,
        "steps": (make_step(),),
        "expected_result": "Transaction should be successful and state should be updated",
    }
    defaults.update(overrides)
    return TestCase(**defaults)


# ---------------------------------------------------------------------------
# In-memory chain client
# ---------------------------------------------------------------------------


class FakeChainClient:
    """Deterministic in-memory ``ChainClient``.

    Attributes:
        code: Deployed bytecode keyed by lower-cased address.
        faults: Exceptions to raise, keyed by method name, on submit or read.
        reverts: Method names whose transactions revert on confirmation.
        probe_error: Exception raised by ``get_code`` when set.
        gate: When set, write submissions wait on this event first.
        calls: Every call made, as ``(kind, method, args)``.
    """

    def __init__(self) -> None:
        self.code: dict[str, bytes] = {CONTRACT_ADDRESS.lower(): b"\x60\x80\x60\x40"}
        self.faults: dict[str, Exception] = {}
        self.reverts: set[str] = set()
        self.probe_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[str, str, tuple[Any, ...]]] = []
        self.closed = False
        self._pending: dict[str, str] = {}

    @staticmethod
    def _method(signature: str) -> str:
        return signature.split("(", 1)[0]

    async def submit_call(
        self, address: str, signature: str, args: Sequence[Any]
    ) -> str:
        method = self._method(signature)
        self.calls.append(("submit", method, tuple(args)))
        if self.gate is not None:
            await self.gate.wait()
        if method in self.faults:
            raise self.faults[method]
        tx_hash = f"0x{len(self.calls):064x}"
        self._pending[tx_hash] = method
        return tx_hash

    async def wait_for_confirmation(self, tx_hash: str) -> Mapping[str, Any]:
        method = self._pending.pop(tx_hash)
        self.calls.append(("confirm", method, ()))
        if method in self.reverts:
            raise TransactionRevertedError(tx_hash)
        return {"transactionHash": tx_hash, "status": 1}

    async def read_call(
        self, address: str, signature: str, args: Sequence[Any]
    ) -> bytes:
        method = self._method(signature)
        self.calls.append(("read", method, tuple(args)))
        if method in self.faults:
            raise self.faults[method]
        return b"\x00" * 32

    async def get_code(self, address: str) -> bytes:
        if self.probe_error is not None:
            raise self.probe_error
        return self.code.get(address.lower(), b"")

    async def close(self) -> None:
        self.closed = True


class FakeClientFactory:
    """Client factory handing out ``FakeChainClient`` instances.

    Attributes:
        clients: Every client created, in order.
        endpoints: Endpoint passed for each created client.
    """

    def __init__(self, client: FakeChainClient | None = None) -> None:
        self._next = client
        self.clients: list[FakeChainClient] = []
        self.endpoints: list[NetworkEndpoint] = []

    def __call__(self, endpoint: NetworkEndpoint, config: RunnerConfig) -> FakeChainClient:
        client = self._next if self._next is not None else FakeChainClient()
        self._next = None
        self.clients.append(client)
        self.endpoints.append(endpoint)
        return client


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_client() -> FakeChainClient:
    """Return a fresh in-memory chain client."""
    return FakeChainClient()


@pytest.fixture()
def client_factory(fake_client: FakeChainClient) -> FakeClientFactory:
    """Return a factory whose first client is ``fake_client``."""
    return FakeClientFactory(fake_client)


@pytest.fixture()
def erc20_abi_json() -> str:
    """Return a minimal ERC-20 ABI as JSON text."""
    return json.dumps([BALANCE_OF, TRANSFER_EVENT, TRANSFER])


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove CONTRACT_TESTER_* variables so host settings never leak in."""
    import os

    for name in list(os.environ):
        if name.startswith("CONTRACT_TESTER_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Drop handlers that ``configure_logging`` attaches during a test."""
    pkg_logger = logging.getLogger("contract_tester")
    saved_handlers = list(pkg_logger.handlers)
    saved_level = pkg_logger.level
    yield
    for handler in pkg_logger.handlers:
        if handler not in saved_handlers:
            handler.close()
    pkg_logger.handlers = saved_handlers
    pkg_logger.setLevel(saved_level)
