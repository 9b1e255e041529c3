"""Chain-client capability: the narrow seam between executor and network.

The executor only talks to a ``ChainClient``: submit a call, wait for its
confirmation, perform a read-only call, and fetch deployed code. Tests swap
in an in-memory fake; ``Web3ChainClient`` is the real implementation over
web3.py's ``AsyncWeb3`` with a local ``eth_account`` signer.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from eth_abi import encode
from eth_account import Account
from eth_utils import (
    encode_hex,
    function_signature_to_4byte_selector,
    is_hexstr,
    to_bytes,
    to_checksum_address,
)
from hexbytes import HexBytes
from web3 import AsyncHTTPProvider, AsyncWeb3

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from contract_tester.models import RunnerConfig
    from contract_tester.networks import NetworkEndpoint

logger = logging.getLogger(__name__)


class ChainClientError(Exception):
    """A fault raised by the chain client itself."""


class TransactionRevertedError(ChainClientError):
    """A submitted transaction was mined with a failure status.

    Attributes:
        tx_hash: Hash of the reverted transaction.
    """

    def __init__(self, tx_hash: str) -> None:
        """Initialize with the hash of the reverted transaction."""
        super().__init__(f"Transaction reverted: {tx_hash}")
        self.tx_hash = tx_hash


@runtime_checkable
class ChainClient(Protocol):
    """Capability the executor needs from a blockchain connection."""

    async def submit_call(
        self, address: str, signature: str, args: Sequence[Any]
    ) -> str:
        """Sign and broadcast a state-changing call; return its tx hash."""
        ...

    async def wait_for_confirmation(self, tx_hash: str) -> Mapping[str, Any]:
        """Block until *tx_hash* is mined; raise if it reverted."""
        ...

    async def read_call(
        self, address: str, signature: str, args: Sequence[Any]
    ) -> bytes:
        """Execute a read-only call and return the raw return data."""
        ...

    async def get_code(self, address: str) -> bytes:
        """Return the bytecode deployed at *address* (empty if none)."""
        ...

    async def close(self) -> None:
        """Release transport resources."""
        ...


# ---------------------------------------------------------------------------
# ABI encoding helpers
# ---------------------------------------------------------------------------


def split_signature(signature: str) -> list[str]:
    """Return the parameter types of a canonical signature.

    Args:
        signature: e.g. ``"transfer(address,uint256)"``.

    Returns:
        e.g. ``["address", "uint256"]``.

    Raises:
        ValueError: If *signature* is not of the form ``name(types)``.
    """
    open_idx = signature.find("(")
    if open_idx <= 0 or not signature.endswith(")"):
        msg = f"Malformed function signature: {signature!r}"
        raise ValueError(msg)
    inner = signature[open_idx + 1 : -1]
    return [t.strip() for t in inner.split(",")] if inner else []


def _coerce_arg(abi_type: str, value: Any) -> Any:
    """Convert hex-string byte values to ``bytes`` for the ABI encoder."""
    if abi_type.startswith("bytes") and isinstance(value, str) and is_hexstr(value):
        return to_bytes(hexstr=value)
    return value


def encode_call(signature: str, args: Sequence[Any]) -> bytes:
    """Build calldata: 4-byte selector followed by the ABI-encoded arguments.

    Raises:
        ValueError: If the signature is malformed or the argument count is wrong.
        eth_abi.exceptions.EncodingError: If a value does not fit its type.
    """
    types = split_signature(signature)
    if len(types) != len(args):
        msg = f"{signature} expects {len(types)} arguments, got {len(args)}"
        raise ValueError(msg)
    values = [_coerce_arg(t, v) for t, v in zip(types, args, strict=True)]
    return function_signature_to_4byte_selector(signature) + encode(types, values)


# ---------------------------------------------------------------------------
# web3.py implementation
# ---------------------------------------------------------------------------


class Web3ChainClient:
    """``ChainClient`` backed by ``AsyncWeb3`` over HTTP JSON-RPC.

    Transactions are signed locally by a single ``LocalAccount`` and
    submitted one at a time; nonces are read from the pending block, so the
    client must not be used for concurrent submissions.
    """

    def __init__(
        self,
        rpc_url: str,
        account: LocalAccount,
        *,
        receipt_timeout_seconds: float = 120,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            rpc_url: JSON-RPC HTTP endpoint.
            account: Signing identity.
            receipt_timeout_seconds: Maximum wait for a transaction receipt.
            w3: Preconfigured ``AsyncWeb3`` instance (mainly for tests).
        """
        self.rpc_url = rpc_url
        self.account = account
        self.receipt_timeout_seconds = receipt_timeout_seconds
        self._w3 = w3 if w3 is not None else AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._chain_id: int | None = None

    @classmethod
    def from_endpoint(
        cls, endpoint: NetworkEndpoint, config: RunnerConfig
    ) -> Web3ChainClient:
        """Build a client for *endpoint* using the signing identity in *config*.

        When ``config.private_key`` is unset an ephemeral account is created;
        it holds no funds, so write calls will fault at submission.

        Args:
            endpoint: Network endpoint to connect to.
            config: Runner configuration.

        Returns:
            A ready-to-use client.
        """
        if config.private_key:
            account = Account.from_key(config.private_key)
        else:
            account = Account.create()
            logger.warning(
                "No signing key configured; using ephemeral account %s",
                account.address,
            )
        rpc_url = config.rpc_url or endpoint.rpc_url
        logger.info("Connecting to %s at %s", endpoint.name, rpc_url)
        return cls(
            rpc_url,
            account,
            receipt_timeout_seconds=config.receipt_timeout_seconds,
        )

    async def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self._w3.eth.chain_id
        return self._chain_id

    async def submit_call(
        self, address: str, signature: str, args: Sequence[Any]
    ) -> str:
        """Sign and broadcast a transaction calling *signature* on *address*.

        Returns:
            The transaction hash as ``0x``-prefixed hex.
        """
        tx: dict[str, Any] = {
            "from": self.account.address,
            "to": to_checksum_address(address),
            "data": encode_call(signature, args),
            "value": 0,
            "nonce": await self._w3.eth.get_transaction_count(
                self.account.address, "pending"
            ),
            "chainId": await self._get_chain_id(),
            "gasPrice": await self._w3.eth.gas_price,
        }
        tx["gas"] = await self._w3.eth.estimate_gas(tx)
        signed = self.account.sign_transaction(tx)
        tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.debug("Submitted %s to %s: %s", signature, address, encode_hex(tx_hash))
        return encode_hex(tx_hash)

    async def wait_for_confirmation(self, tx_hash: str) -> Mapping[str, Any]:
        """Wait for the receipt of *tx_hash*.

        Raises:
            TransactionRevertedError: If the receipt status is 0.
            web3.exceptions.TimeExhausted: If no receipt arrives in time.
        """
        receipt = await self._w3.eth.wait_for_transaction_receipt(
            HexBytes(tx_hash), timeout=self.receipt_timeout_seconds
        )
        if receipt.get("status") == 0:
            raise TransactionRevertedError(tx_hash)
        return receipt

    async def read_call(
        self, address: str, signature: str, args: Sequence[Any]
    ) -> bytes:
        """Run ``eth_call`` against the latest block."""
        result = await self._w3.eth.call(
            {"to": to_checksum_address(address), "data": encode_call(signature, args)}
        )
        return bytes(result)

    async def get_code(self, address: str) -> bytes:
        """Fetch deployed bytecode.

        Raises:
            ValueError: If *address* is not a valid address.
        """
        code = await self._w3.eth.get_code(to_checksum_address(address))
        return bytes(code)

    async def close(self) -> None:
        """Close the provider's HTTP session."""
        await self._w3.provider.disconnect()
