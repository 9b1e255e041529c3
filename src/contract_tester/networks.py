"""Catalogue of named network endpoints.

Loads the fixed set of endpoints from ``networks.yaml`` in this package
directory. Resolving an identifier that is not in the catalogue falls back
to the designated default endpoint instead of failing.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict
import yaml

logger = logging.getLogger(__name__)

_CATALOGUE_PATH: Path = Path(__file__).parent / "networks.yaml"


class NetworkEndpoint(BaseModel):
    """A named JSON-RPC endpoint.

    Attributes:
        id: Short identifier, e.g. ``"sepolia"``.
        name: Display name.
        rpc_url: JSON-RPC HTTP URL.
        chain_id: EIP-155 chain id.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    rpc_url: str
    chain_id: int


class NetworkRegistry:
    """Registry of network endpoints keyed by identifier.

    Attributes:
        default_id: Identifier used when resolution falls back.
    """

    def __init__(self, path: Path = _CATALOGUE_PATH) -> None:
        """Load the catalogue from *path*.

        Args:
            path: YAML file with ``default`` and ``networks`` keys.

        Raises:
            ValueError: If the default identifier is not in the catalogue.
        """
        with path.open(encoding="utf-8") as fh:
            data: dict[str, Any] = yaml.safe_load(fh)

        self._endpoints: dict[str, NetworkEndpoint] = {}
        for entry in data["networks"]:
            endpoint = NetworkEndpoint(**entry)
            self._endpoints[endpoint.id] = endpoint

        self.default_id: str = str(data["default"])
        if self.default_id not in self._endpoints:
            msg = f"Default network {self.default_id!r} is not in the catalogue"
            raise ValueError(msg)

    @property
    def ids(self) -> list[str]:
        """Identifiers in catalogue order."""
        return list(self._endpoints)

    @property
    def default(self) -> NetworkEndpoint:
        """The fallback endpoint."""
        return self._endpoints[self.default_id]

    def resolve(self, network_id: str | None) -> NetworkEndpoint:
        """Return the endpoint for *network_id*, or the default one.

        Args:
            network_id: Identifier to look up.

        Returns:
            The matching endpoint, or the default when unrecognized.
        """
        endpoint = self._endpoints.get(network_id or "")
        if endpoint is None:
            logger.warning(
                "Unknown network %r; falling back to %s", network_id, self.default_id
            )
            return self.default
        return endpoint

    def __contains__(self, network_id: object) -> bool:
        return network_id in self._endpoints

    def __len__(self) -> int:
        return len(self._endpoints)


_singleton_registry: NetworkRegistry | None = None


def get_registry() -> NetworkRegistry:
    """Return the shared ``NetworkRegistry``, loading it on first use."""
    global _singleton_registry  # noqa: PLW0603
    if _singleton_registry is None:
        _singleton_registry = NetworkRegistry()
    return _singleton_registry
