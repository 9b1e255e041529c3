"""CLI entry point for contract-tester.

Provides ``main()`` as the console-script entry point registered in
``pyproject.toml`` as ``contract-tester = "contract_tester.cli:main"``.
Parses arguments, loads the ABI file and optional YAML config, and either
prints the synthesized cases (``--dry-run``) or delegates to
``run_suite_sync()`` and prints a per-case summary.
"""

from __future__ import annotations

import argparse
from pathlib import Path
import random
import sys
from typing import TYPE_CHECKING, Any

import yaml

from contract_tester.models import RunnerConfig, TestStatus
from contract_tester.networks import get_registry
from contract_tester.runner import SuiteError, apply_env_overrides, run_suite_sync
from contract_tester.schema import SchemaFormatError
from contract_tester.synthesizer import get_synthesizer

if TYPE_CHECKING:
    from collections.abc import Sequence

    from contract_tester.models import SuiteResult, TestCase

_STATUS_MARKERS: dict[TestStatus, str] = {
    TestStatus.PENDING: "[ ]",
    TestStatus.RUNNING: "[~]",
    TestStatus.PASSED: "[+]",
    TestStatus.FAILED: "[x]",
}


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="contract-tester",
        description="Generate and run test cases for a deployed smart contract.",
    )
    parser.add_argument(
        "--abi",
        required=True,
        help="Path to the contract ABI JSON (bare array or compiler artifact).",
    )
    parser.add_argument(
        "--address",
        required=True,
        help="Address of the deployed contract under test.",
    )
    parser.add_argument(
        "--network",
        default=None,
        help=f"Network to run against ({', '.join(get_registry().ids)}).",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to an optional RunnerConfig YAML file.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for fuzz arguments, for reproducible runs.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only synthesize and list the test cases; do not execute them.",
    )
    parser.add_argument(
        "--report",
        default=None,
        help="Write the suite result as JSON to this path.",
    )
    return parser


def _load_yaml(path: str, label: str) -> dict[str, Any]:
    """Load a YAML file that must contain a mapping.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file does not parse to a dict.
    """
    file_path = Path(path)
    if not file_path.exists():
        msg = f"{label} file not found: {path}"
        raise FileNotFoundError(msg)

    with open(file_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        msg = f"{label} file must contain a YAML mapping, got {type(data).__name__}"
        raise ValueError(msg)

    return data


def _read_text(path: str, label: str) -> str:
    file_path = Path(path)
    if not file_path.exists():
        msg = f"{label} file not found: {path}"
        raise FileNotFoundError(msg)
    return file_path.read_text(encoding="utf-8")


def _build_config(args: argparse.Namespace) -> RunnerConfig:
    """Merge the YAML config file with command-line flags."""
    data: dict[str, Any] = {}
    if args.config is not None:
        data = _load_yaml(args.config, "config")
    if args.network is not None:
        data["network"] = args.network
    if args.seed is not None:
        data["fuzz_seed"] = args.seed
    return RunnerConfig(**data)


def _print_cases(cases: Sequence[TestCase]) -> None:
    for case in cases:
        print(f"{_STATUS_MARKERS[case.status]} {case.name}")
        for step in case.steps:
            args = ", ".join(repr(a) for a in step.args)
            print(f"      {step.signature} <- ({args})")
        if case.actual_result:
            print(f"      Result: {case.actual_result}")


def _print_summary(suite: SuiteResult) -> None:
    sep = "=" * 60
    print(sep)
    print(f"  Network:   {suite.network}")
    print(f"  Contract:  {suite.target_address}")
    print(f"  Cases:     {len(suite.cases)}")
    print(f"  Passed:    {suite.passed}")
    print(f"  Failed:    {suite.failed}")
    print(f"  Duration:  {suite.duration_seconds:.1f}s")
    print(sep)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the contract-tester CLI.

    Args:
        argv: Arguments without the program name; ``sys.argv[1:]`` when None.

    Returns:
        Exit code: 0 when every case passed (or on a dry run), 1 otherwise.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        schema_text = _read_text(args.abi, "ABI")
        config = apply_env_overrides(_build_config(args))

        if args.dry_run:
            rng = random.Random(config.fuzz_seed) if config.fuzz_seed is not None else None
            cases = get_synthesizer().synthesize_json(schema_text, args.address, rng)
            _print_cases(cases)
            print(f"{len(cases)} test cases synthesized.")
            return 0

        suite = run_suite_sync(schema_text, args.address, config)
        _print_cases(suite.cases)
        _print_summary(suite)

        if args.report is not None:
            Path(args.report).write_text(
                suite.model_dump_json(indent=2), encoding="utf-8"
            )
            print(f"Report written to: {args.report}")

    except SuiteError as exc:
        print(f"Suite error: {exc}", file=sys.stderr)
        print(f"Diagnostics: {exc.diagnostics}", file=sys.stderr)
        return 1
    except SchemaFormatError as exc:
        print(f"Schema error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    return 0 if suite.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
