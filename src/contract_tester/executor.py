"""Sequential execution of synthesized test cases against a network.

``StepExecutor`` owns one ``ChainClient`` per network selection. Cases run
strictly one after another and the steps inside a case run in order: later
steps and cases may depend on chain state written by earlier ones, and the
signing identity needs ordered nonces.

Fault handling is per step. The first faulting step stops its case, which is
marked failed with the fault text verbatim; the batch then moves on to the
next case. Every case in a batch reaches a terminal status.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
import logging
import re
from typing import TYPE_CHECKING

from contract_tester.chain import ChainClient, Web3ChainClient
from contract_tester.models import (
    ExecutionResult,
    InvalidTransitionError,
    RunnerConfig,
    StepAction,
    TargetValidation,
    TestCase,
    TestStatus,
    TestStep,
)
from contract_tester.networks import NetworkRegistry, get_registry

if TYPE_CHECKING:
    from contract_tester.networks import NetworkEndpoint

logger = logging.getLogger(__name__)

PASSED_NARRATIVE = "Test passed successfully"
INVALID_FORMAT_MESSAGE = "Invalid contract address format"
NOT_DEPLOYED_MESSAGE = (
    "Invalid contract address or contract not deployed on selected network"
)

NOT_CONFIGURED_MESSAGE = "No network selected; select a network before validating"

_ADDRESS_PATTERN: re.Pattern[str] = re.compile(r"^0x[a-fA-F0-9]{40}$")

ClientFactory = Callable[["NetworkEndpoint", RunnerConfig], ChainClient]


class NetworkNotConfiguredError(RuntimeError):
    """An operation needed a chain client before ``configure_network`` ran."""


def is_address_format(address: str) -> bool:
    """Whether *address* is ``0x`` followed by 40 hex digits."""
    return bool(_ADDRESS_PATTERN.match(address))


class StepExecutor:
    """Runs test cases against the configured network.

    Attributes:
        config: Runner configuration passed to the client factory.
        endpoint: Currently selected endpoint, or ``None`` before configuration.
    """

    def __init__(
        self,
        client_factory: ClientFactory = Web3ChainClient.from_endpoint,
        config: RunnerConfig | None = None,
        registry: NetworkRegistry | None = None,
    ) -> None:
        """Initialize without a network; call ``configure_network`` first.

        Args:
            client_factory: Builds a chain client for an endpoint.
            config: Runner configuration. Defaults to ``RunnerConfig()``.
            registry: Network catalogue. Defaults to the shared registry.
        """
        self.config = config if config is not None else RunnerConfig()
        self.endpoint: NetworkEndpoint | None = None
        self._client_factory = client_factory
        self._registry = registry if registry is not None else get_registry()
        self._client: ChainClient | None = None
        # Held for a whole batch so a network swap waits for it to finish.
        self._lock = asyncio.Lock()

    @property
    def client(self) -> ChainClient:
        """The active chain client.

        Raises:
            NetworkNotConfiguredError: If no network has been configured.
        """
        if self._client is None:
            msg = "No network configured; call configure_network() first"
            raise NetworkNotConfiguredError(msg)
        return self._client

    # -- network lifecycle -------------------------------------------------

    async def configure_network(self, network_id: str) -> NetworkEndpoint:
        """Select a network, replacing the current chain client.

        Waits for any in-flight execution on the current client to finish
        before swapping. Unknown identifiers fall back to the default network.

        Args:
            network_id: Identifier from the network catalogue.

        Returns:
            The endpoint now in use.
        """
        endpoint = self._registry.resolve(network_id)
        async with self._lock:
            old_client = self._client
            self._client = self._client_factory(endpoint, self.config)
            self.endpoint = endpoint
            if old_client is not None:
                await old_client.close()
        logger.info("Network configured: %s (chain id %d)", endpoint.id, endpoint.chain_id)
        return endpoint

    async def close(self) -> None:
        """Close the current chain client, if any."""
        async with self._lock:
            if self._client is not None:
                await self._client.close()
                self._client = None

    # -- target validation -------------------------------------------------

    async def check_target(self, address: str) -> TargetValidation:
        """Probe *address* for deployed code on the configured network.

        A missing contract and a failed probe are reported identically.
        Probe faults, including a missing network selection, are logged and
        never raised.

        Args:
            address: Contract address to check.

        Returns:
            Validity plus an advisory message when invalid.
        """
        if not address:
            return TargetValidation(is_valid=False)
        if not is_address_format(address):
            return TargetValidation(is_valid=False, message=INVALID_FORMAT_MESSAGE)

        try:
            code = await self.client.get_code(address)
        except NetworkNotConfiguredError as exc:
            logger.warning("Cannot probe %s: %s", address, exc)
            return TargetValidation(is_valid=False, message=NOT_CONFIGURED_MESSAGE)
        except Exception as exc:
            logger.warning("Code probe for %s failed: %s", address, exc)
            return TargetValidation(is_valid=False, message=NOT_DEPLOYED_MESSAGE)

        if not code:
            logger.info("No contract code at %s", address)
            return TargetValidation(is_valid=False, message=NOT_DEPLOYED_MESSAGE)
        return TargetValidation(is_valid=True)

    async def validate_target(self, address: str) -> bool:
        """Return whether contract code is deployed at *address*."""
        return (await self.check_target(address)).is_valid

    # -- execution ---------------------------------------------------------

    async def _run_step(self, client: ChainClient, step: TestStep) -> str:
        """Perform one step and return its success log line.

        Raises:
            Exception: Whatever the chain client raises.
        """
        if step.action != StepAction.CONTRACT_CALL:
            msg = f"Unsupported step action: {step.action!r}"
            raise ValueError(msg)

        if step.read_only:
            data = await client.read_call(step.contract_address, step.signature, step.args)
            return f"{step.method} call succeeded ({len(data)} bytes returned)"

        tx_hash = await client.submit_call(
            step.contract_address, step.signature, step.args
        )
        await client.wait_for_confirmation(tx_hash)
        return f"{step.method} transaction successful: {tx_hash}"

    async def _execute(self, case: TestCase) -> ExecutionResult:
        client = self.client
        if case.status != TestStatus.RUNNING:
            case.mark_running()

        logger.info("Starting test: %s", case.name)
        logs: list[str] = []
        for step in case.steps:
            try:
                logs.append(await self._run_step(client, step))
            except Exception as exc:
                error = str(exc) or type(exc).__name__
                logs.append(f"{step.method} failed: {error}")
                logger.info("Test failed: %s (step %s): %s", case.name, step.id, error)
                case.mark_failed(error)
                return ExecutionResult(
                    test_case_id=case.id,
                    success=False,
                    error=error,
                    logs=tuple(logs),
                )

        case.mark_passed(PASSED_NARRATIVE)
        logger.info("Test passed: %s", case.name)
        return ExecutionResult(test_case_id=case.id, success=True, logs=tuple(logs))

    async def execute(self, case: TestCase) -> ExecutionResult:
        """Execute one case's steps in order, stopping at the first fault.

        The case is moved to ``running`` if still pending, then to ``passed``
        or ``failed``.

        Args:
            case: A pending or running test case.

        Returns:
            The execution result, with one log line per attempted step.

        Raises:
            NetworkNotConfiguredError: If no network has been configured.
            InvalidTransitionError: If the case has already finished.
        """
        async with self._lock:
            return await self._execute(case)

    async def execute_batch(
        self,
        cases: Sequence[TestCase],
        *,
        on_result: Callable[[ExecutionResult], None] | None = None,
    ) -> AsyncIterator[tuple[int, TestCase]]:
        """Execute cases sequentially, publishing each state change.

        For every case, in the order given, yields ``(index, case)`` once
        after marking it ``running`` and once after it reaches its terminal
        status. The lock is held only while a case executes, never across a
        yield: a caller may stop iterating at any point and then reconfigure
        the network, and cases not yet reached stay ``pending``.

        Args:
            cases: Pending test cases, in synthesis order.
            on_result: Called with each ``ExecutionResult`` as it is produced.

        Yields:
            ``(index, case)`` pairs, two per case.

        Raises:
            InvalidTransitionError: If any case is not pending. Raised before
                any case is touched.
        """
        not_pending = [c.id for c in cases if c.status != TestStatus.PENDING]
        if not_pending:
            msg = f"Batch cases must be pending; not pending: {', '.join(not_pending)}"
            raise InvalidTransitionError(msg)

        logger.info("Executing batch of %d test cases", len(cases))
        for index, case in enumerate(cases):
            case.mark_running()
            yield index, case
            async with self._lock:
                result = await self._execute(case)
            if on_result is not None:
                on_result(result)
            yield index, case

    async def run_batch(self, cases: Sequence[TestCase]) -> list[ExecutionResult]:
        """Execute *cases* sequentially and return their results in order."""
        results: list[ExecutionResult] = []
        async for _index, _case in self.execute_batch(cases, on_result=results.append):
            pass
        passed = sum(1 for r in results if r.success)
        logger.info(
            "Batch complete: %d passed, %d failed", passed, len(results) - passed
        )
        return results
