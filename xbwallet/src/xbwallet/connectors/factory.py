"""
Connector construction and lookup by currency.
"""

from __future__ import annotations

from loguru import logger

from xbcore.crypto import KeyGenerator
from xbcore.rpc import JsonRpcClient

from xbwallet.config import ChainConfig, ChainFamily
from xbwallet.connectors.base import WalletConnector
from xbwallet.connectors.bitcoin import BitcoinConnector
from xbwallet.connectors.ethereum import EthereumConnector

# Chain family to connector class mapping
CONNECTOR_CLASSES: dict[ChainFamily, type[WalletConnector]] = {
    ChainFamily.UTXO_SCRIPT: BitcoinConnector,
    ChainFamily.ACCOUNT_CONTRACT: EthereumConnector,
}


def create_connector(
    config: ChainConfig,
    rpc: JsonRpcClient | None = None,
    keygen: KeyGenerator | None = None,
) -> WalletConnector:
    """
    Create the connector serving `config`'s chain family.

    Raises:
        ValueError: If no connector handles the family
    """
    connector_class = CONNECTOR_CLASSES.get(config.family)
    if connector_class is None:
        raise ValueError(f"No connector for chain family {config.family.value}")
    return connector_class(config, rpc=rpc, keygen=keygen)


class ConnectorRegistry:
    """Currency to connector map, one connector per configured chain."""

    def __init__(self) -> None:
        self._connectors: dict[str, WalletConnector] = {}

    @classmethod
    def from_configs(cls, configs: dict[str, ChainConfig]) -> ConnectorRegistry:
        registry = cls()
        for config in configs.values():
            registry.add(create_connector(config))
        return registry

    def add(self, connector: WalletConnector) -> None:
        if connector.currency in self._connectors:
            raise ValueError(f"Connector for {connector.currency} already registered")
        self._connectors[connector.currency] = connector
        logger.info(f"Registered {type(connector).__name__} for {connector.currency}")

    def get(self, currency: str) -> WalletConnector | None:
        return self._connectors.get(currency.upper())

    def currencies(self) -> list[str]:
        return sorted(self._connectors)

    def __contains__(self, currency: str) -> bool:
        return currency.upper() in self._connectors

    def __len__(self) -> int:
        return len(self._connectors)

    async def close_all(self) -> None:
        for connector in self._connectors.values():
            await connector.close()
        self._connectors.clear()
