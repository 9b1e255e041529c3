"""Suite runner: end-to-end synthesis and execution for one contract.

Provides ``run_suite()`` (async) and ``run_suite_sync()`` as the top-level
entry points. A run resolves configuration (explicit values, then
``CONTRACT_TESTER_*`` environment overrides), configures logging, selects
the network, validates the target address, synthesizes the test cases and
executes them as a single sequential batch.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
import random
import time
from typing import Any

from contract_tester.executor import ClientFactory, StepExecutor
from contract_tester.models import RunnerConfig, SuiteResult
from contract_tester.schema import SchemaFormatError
from contract_tester.synthesizer import get_synthesizer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------


class SuiteError(Exception):
    """Suite run aborted before execution, with diagnostic context.

    Attributes:
        diagnostics: Structured context (network, target, stage) for debugging.
    """

    def __init__(self, message: str, *, diagnostics: dict[str, Any]) -> None:
        """Initialize with a message and structured diagnostics.

        Args:
            message: Human-readable error description.
            diagnostics: Structured context about the failure.
        """
        super().__init__(message)
        self.diagnostics = diagnostics


# ---------------------------------------------------------------------------
# Environment variable support
# ---------------------------------------------------------------------------

_ENV_FIELD_MAP: dict[str, str] = {
    "CONTRACT_TESTER_NETWORK": "network",
    "CONTRACT_TESTER_RPC_URL": "rpc_url",
    "CONTRACT_TESTER_PRIVATE_KEY": "private_key",
    "CONTRACT_TESTER_RECEIPT_TIMEOUT": "receipt_timeout_seconds",
    "CONTRACT_TESTER_LOG_LEVEL": "log_level",
}
"""Maps environment variable names to RunnerConfig field names."""


def apply_env_overrides(config: RunnerConfig) -> RunnerConfig:
    """Apply ``CONTRACT_TESTER_*`` env var overrides to a config.

    Environment variables override **default** field values only; a field
    whose value differs from the ``RunnerConfig`` default is considered
    explicitly set and is left alone. Unparseable values are ignored.

    Args:
        config: The configuration to apply overrides to.

    Returns:
        A new ``RunnerConfig`` with overrides applied, or *config* itself
        when nothing changed.
    """
    defaults = RunnerConfig()
    overrides: dict[str, Any] = {}

    for env_var, field_name in _ENV_FIELD_MAP.items():
        env_value = os.environ.get(env_var)
        if env_value is None:
            continue
        if getattr(config, field_name) != getattr(defaults, field_name):
            continue

        parsed = _parse_env_value(field_name, env_value)
        if parsed is not None:
            overrides[field_name] = parsed

    if not overrides:
        return config

    # Round-trip through validation so a bad log level is rejected here.
    try:
        return RunnerConfig(**{**config.model_dump(), **overrides})
    except ValueError as exc:
        logger.warning("Ignoring invalid environment overrides: %s", exc)
        return config


def _parse_env_value(field_name: str, raw: str) -> Any:
    """Parse a raw env var string into the type of *field_name*.

    Returns:
        The parsed value, or ``None`` if it cannot be used.
    """
    if field_name == "receipt_timeout_seconds":
        try:
            value = int(raw)
        except ValueError:
            return None
        return value if value >= 1 else None
    return raw or None


# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s — %(message)s"


def configure_logging(config: RunnerConfig) -> None:
    """Configure the ``contract_tester`` logger.

    Adds a console handler and, when ``config.log_file`` is set, a file
    handler. Idempotent: repeated calls do not duplicate handlers.

    Args:
        config: Configuration providing ``log_level`` and ``log_file``.
    """
    pkg_logger = logging.getLogger("contract_tester")
    pkg_logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    if not any(
        type(h) is logging.StreamHandler for h in pkg_logger.handlers
    ):
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(_LOG_FORMAT))
        pkg_logger.addHandler(console)

    if config.log_file is not None:
        target = str(Path(config.log_file).resolve())
        has_file = any(
            isinstance(h, logging.FileHandler)
            and getattr(h, "baseFilename", None) == target
            for h in pkg_logger.handlers
        )
        if not has_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
            pkg_logger.addHandler(file_handler)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def run_suite(
    schema_text: str,
    target_address: str,
    config: RunnerConfig | None = None,
    *,
    client_factory: ClientFactory | None = None,
) -> SuiteResult:
    """Synthesize and execute the full test suite for a contract.

    Args:
        schema_text: ABI JSON (bare array or compiler artifact).
        target_address: Address of the deployed contract.
        config: Runner configuration; defaults plus env overrides when ``None``.
        client_factory: Chain-client factory override (tests use a fake).

    Returns:
        The executed cases and their results.

    Raises:
        SuiteError: If the target is invalid or the schema is not a JSON ABI.
    """
    effective = apply_env_overrides(config if config is not None else RunnerConfig())
    configure_logging(effective)
    start = time.monotonic()

    executor = (
        StepExecutor(client_factory, effective)
        if client_factory is not None
        else StepExecutor(config=effective)
    )
    try:
        endpoint = await executor.configure_network(effective.network)

        validation = await executor.check_target(target_address)
        if not validation:
            msg = validation.message or "No contract address given"
            raise SuiteError(
                msg,
                diagnostics={
                    "stage": "validation",
                    "network": endpoint.id,
                    "target_address": target_address,
                },
            )

        rng = random.Random(effective.fuzz_seed) if effective.fuzz_seed is not None else None
        try:
            cases = get_synthesizer().synthesize_json(schema_text, target_address, rng)
        except SchemaFormatError as exc:
            raise SuiteError(
                str(exc),
                diagnostics={"stage": "synthesis", "network": endpoint.id},
            ) from exc

        results = await executor.run_batch(cases)
    finally:
        await executor.close()

    duration = time.monotonic() - start
    suite = SuiteResult(
        network=endpoint.id,
        target_address=target_address,
        cases=cases,
        results=results,
        duration_seconds=duration,
    )
    logger.info(
        "Suite complete on %s: %d passed, %d failed in %.1fs",
        suite.network,
        suite.passed,
        suite.failed,
        duration,
    )
    return suite


def run_suite_sync(
    schema_text: str,
    target_address: str,
    config: RunnerConfig | None = None,
    *,
    client_factory: ClientFactory | None = None,
) -> SuiteResult:
    """Synchronous wrapper for ``run_suite()`` via ``asyncio.run()``."""
    return asyncio.run(
        run_suite(schema_text, target_address, config, client_factory=client_factory)
    )
