"""Derive test cases from a smart-contract ABI and run them against an EVM endpoint."""

__version__ = "0.1.0"
