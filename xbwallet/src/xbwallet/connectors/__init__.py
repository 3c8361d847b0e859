"""
Wallet connectors: one uniform interface over script chains and contract chains.
"""

from xbwallet.connectors.base import OutputSpec, WalletConnector
from xbwallet.connectors.bitcoin import BitcoinConnector, HtlcSpend
from xbwallet.connectors.ethereum import EthereumConnector, pubkey_to_address
from xbwallet.connectors.factory import CONNECTOR_CLASSES, ConnectorRegistry, create_connector

__all__ = [
    "BitcoinConnector",
    "CONNECTOR_CLASSES",
    "ConnectorRegistry",
    "EthereumConnector",
    "HtlcSpend",
    "OutputSpec",
    "WalletConnector",
    "create_connector",
    "pubkey_to_address",
]
