"""
Chain connector configuration.

Per-chain constants are validated once, at construction, so connectors never
see a configuration that breaks the locktime asymmetry.
"""

from __future__ import annotations

import tomllib
from enum import Enum
from pathlib import Path
from typing import Any

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from xbcore.constants import (
    COIN,
    DEFAULT_RPC_TIMEOUT,
    INITIATOR_WINDOW_SECONDS,
    RESPONDER_WINDOW_SECONDS,
    XADDR_PREFIX_LENGTH,
)
from xbcore.models import SwapRole


class ChainFamily(str, Enum):
    UTXO_SCRIPT = "utxo_script"
    ACCOUNT_CONTRACT = "account_contract"


class LockWindows(BaseModel):
    """Refund windows in seconds for each swap role."""

    initiator_seconds: int = Field(default=INITIATOR_WINDOW_SECONDS, gt=0)
    responder_seconds: int = Field(default=RESPONDER_WINDOW_SECONDS, gt=0)

    @model_validator(mode="after")
    def check_asymmetry(self) -> LockWindows:
        if self.initiator_seconds <= self.responder_seconds:
            raise ValueError(
                f"initiator window ({self.initiator_seconds}s) must exceed "
                f"responder window ({self.responder_seconds}s)"
            )
        return self

    def seconds_for(self, role: SwapRole) -> int:
        if role == SwapRole.INITIATOR:
            return self.initiator_seconds
        return self.responder_seconds


class ChainConfig(BaseModel):
    """Configuration for one chain connector."""

    currency: str = Field(..., min_length=1, max_length=16)
    family: ChainFamily = ChainFamily.UTXO_SCRIPT
    # Bitcoin network - used for address encoding (bc1 vs tb1 vs bcrt1)
    network: str = "mainnet"

    # Node endpoint
    host: str = "127.0.0.1"
    port: int = Field(default=8332, ge=1, le=65535)
    user: str = ""
    password: str = ""
    use_tls: bool = False
    rpc_timeout: float = Field(default=DEFAULT_RPC_TIMEOUT, gt=0)

    # Cross-chain address prefix, hex encoded
    address_prefix: str = Field(..., pattern=r"^[0-9a-fA-F]+$")

    # Fee model, in base units
    fee_per_byte: int = Field(default=20, ge=0)
    min_tx_fee: int = Field(default=10_000, ge=0)
    coin: int = Field(default=COIN, gt=0)

    block_time: int = Field(default=600, gt=0, description="Block interval in seconds")
    required_confirmations: int = Field(default=1, ge=0)
    lock_windows: LockWindows = Field(default_factory=LockWindows)

    # Account-contract chains only
    contract_address: str = ""
    chain_id: int | None = None
    gas_limit: int = Field(default=300_000, gt=0, description="Upper bound for estimated gas")

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("address_prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        if len(v) != XADDR_PREFIX_LENGTH * 2:
            raise ValueError(f"address_prefix must be {XADDR_PREFIX_LENGTH} bytes of hex")
        return v.lower()

    @field_validator("network")
    @classmethod
    def validate_network(cls, v: str) -> str:
        if v not in ("mainnet", "testnet", "signet", "regtest"):
            raise ValueError(f"Unknown network: {v}")
        return v

    @model_validator(mode="after")
    def check_chain_constants(self) -> ChainConfig:
        # Compare whole blocks: the windows are converted with integer division
        initiator_blocks = self.lock_windows.initiator_seconds // self.block_time
        responder_blocks = self.lock_windows.responder_seconds // self.block_time
        if responder_blocks < 1 or initiator_blocks <= responder_blocks:
            raise ValueError(
                f"lock windows give {initiator_blocks} initiator / {responder_blocks} "
                f"responder blocks at {self.block_time}s per block; initiator must be "
                "strictly longer and responder at least one block"
            )
        if self.family == ChainFamily.ACCOUNT_CONTRACT:
            if not self.contract_address:
                raise ValueError("contract_address is required for account-contract chains")
            if not is_address(self.contract_address):
                raise ValueError(f"contract_address is not an address: {self.contract_address}")
            self.contract_address = to_checksum_address(self.contract_address)
            if self.chain_id is None:
                raise ValueError("chain_id is required for account-contract chains")
        return self

    @property
    def prefix_bytes(self) -> bytes:
        return bytes.fromhex(self.address_prefix)

    def lock_blocks(self, role: SwapRole) -> int:
        return self.lock_windows.seconds_for(role) // self.block_time


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="XBRIDGE_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    log_level: str = "INFO"
    chains_file: Path = Path("xbridge.toml")


def get_settings() -> Settings:
    return Settings()


def parse_chain_configs(data: dict[str, Any]) -> dict[str, ChainConfig]:
    """Build configs from a mapping of `{"chains": {"BTC": {...}, ...}}`."""
    configs: dict[str, ChainConfig] = {}
    for currency, values in data.get("chains", {}).items():
        config = ChainConfig(**{"currency": currency, **values})
        configs[config.currency] = config
    return configs


def load_chain_configs(path: Path) -> dict[str, ChainConfig]:
    """
    Load chain configurations from a TOML file.

    Example:
        [chains.BTC]
        family = "utxo_script"
        port = 8332
        address_prefix = "0000"
    """
    with path.open("rb") as f:
        data = tomllib.load(f)
    return parse_chain_configs(data)
