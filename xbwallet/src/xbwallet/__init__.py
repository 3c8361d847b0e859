"""
xbwallet - Wallet connectors for xbridge atomic swaps

Connectors for UTXO-script chains (Bitcoin Core) and account-contract chains
(Ethereum), the swap transaction builder and chain configuration.
"""

__version__ = "0.3.0"

from xbwallet.builder import CoinSelection, SwapTransactionBuilder
from xbwallet.config import ChainConfig, ChainFamily, LockWindows, Settings, load_chain_configs
from xbwallet.connectors import (
    BitcoinConnector,
    ConnectorRegistry,
    EthereumConnector,
    WalletConnector,
    create_connector,
)

__all__ = [
    "BitcoinConnector",
    "ChainConfig",
    "ChainFamily",
    "CoinSelection",
    "ConnectorRegistry",
    "EthereumConnector",
    "LockWindows",
    "Settings",
    "SwapTransactionBuilder",
    "WalletConnector",
    "create_connector",
    "load_chain_configs",
]
