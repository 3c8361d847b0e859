"""
xbridge wallet CLI - inspect configured chains through their wallet connectors.
"""

from __future__ import annotations

import asyncio
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

import typer
from loguru import logger
from pydantic import ValidationError

from xbcore.models import SwapRole

from xbwallet.config import get_settings, load_chain_configs
from xbwallet.connectors import (
    BitcoinConnector,
    EthereumConnector,
    WalletConnector,
    create_connector,
    pubkey_to_address,
)
from xbwallet.wallet.address import pubkey_to_p2wpkh_address

app = typer.Typer(
    name="xbridge-wallet",
    help="xbridge atomic swap wallet connectors",
    add_completion=False,
)


def setup_logging(level: str | None = None) -> None:
    """Configure loguru logging, defaulting to the XBRIDGE_LOG_LEVEL setting."""
    level = level or get_settings().log_level
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def load_connector(currency: str, config_file: Path | None) -> WalletConnector:
    path = config_file or get_settings().chains_file
    if not path.exists():
        logger.error(f"Chain config file not found: {path}")
        raise typer.Exit(1)
    try:
        configs = load_chain_configs(path)
    except (ValidationError, ValueError) as e:
        logger.error(f"Invalid chain config {path}: {e}")
        raise typer.Exit(1)

    config = configs.get(currency.upper())
    if config is None:
        logger.error(f"{currency} not configured, have: {', '.join(sorted(configs)) or 'none'}")
        raise typer.Exit(1)
    return create_connector(config)


CurrencyOption = typer.Option(..., "--currency", "-c", help="Chain currency, e.g. BTC")
ConfigOption = typer.Option(None, "--config", envvar="XBRIDGE_CHAINS_FILE", help="Chains TOML")
LogLevelOption = typer.Option(None, "--log-level", "-l", help="Defaults to XBRIDGE_LOG_LEVEL")


@app.command()
def address_book(
    currency: str = CurrencyOption,
    config_file: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """List wallet addresses grouped by label."""
    setup_logging(log_level)
    connector = load_connector(currency, config_file)
    entries = asyncio.run(_address_book(connector))
    if entries is None:
        logger.error("Address book request failed")
        raise typer.Exit(1)
    for label, addresses in entries:
        print(f"{label or '(no label)'}:")
        for address in addresses:
            print(f"  {address}")


async def _address_book(connector: WalletConnector) -> list[tuple[str, list[str]]] | None:
    try:
        return await connector.request_address_book()
    finally:
        await connector.close()


@app.command()
def new_keypair(
    currency: str = CurrencyOption,
    config_file: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Generate a fresh swap key pair. Nothing is stored."""
    setup_logging(log_level)
    connector = load_connector(currency, config_file)
    pubkey, privkey = connector.new_key_pair()
    asyncio.run(connector.close())
    print(f"pubkey:  {pubkey.hex()}")
    print(f"privkey: {privkey.hex()}")
    key_id = connector.get_key_id(pubkey)
    if key_id:
        print(f"key id:  {key_id.hex()}")
    if isinstance(connector, BitcoinConnector):
        print(f"address: {pubkey_to_p2wpkh_address(pubkey, connector.config.network)}")
    elif isinstance(connector, EthereumConnector):
        print(f"address: {pubkey_to_address(pubkey)}")


@app.command()
def locktime(
    currency: str = CurrencyOption,
    role: SwapRole = typer.Option(SwapRole.INITIATOR, "--role", "-r"),
    config_file: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Show the lock height a deposit made now would use."""
    setup_logging(log_level)
    connector = load_connector(currency, config_file)
    lock_time = asyncio.run(_lock_time(connector, role))
    if lock_time == 0:
        logger.error("Block height unavailable")
        raise typer.Exit(1)
    print(f"{role.value} lock time: {lock_time}")


async def _lock_time(connector: WalletConnector, role: SwapRole) -> int:
    try:
        return await connector.lock_time(role)
    finally:
        await connector.close()


@app.command()
def fees(
    currency: str = CurrencyOption,
    inputs: int = typer.Option(1, "--inputs", "-i", min=0),
    outputs: int = typer.Option(1, "--outputs", "-o", min=0),
    config_file: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Show the minimum deposit and payment fees for a transaction shape."""
    setup_logging(log_level)
    connector = load_connector(currency, config_file)
    asyncio.run(connector.close())
    print(f"deposit: {connector.min_fee_deposit(inputs, outputs)} {connector.currency}")
    print(f"payment: {connector.min_fee_payment(inputs, outputs)} {connector.currency}")


@app.command()
def check_tx(
    txid: str = typer.Argument(..., help="Deposit transaction id"),
    destination: str = typer.Option(..., "--destination", "-d", help="Expected lock destination"),
    amount: str = typer.Option(..., "--amount", "-a", help="Expected amount in coins"),
    currency: str = CurrencyOption,
    secret_hash: str | None = typer.Option(None, "--secret-hash", help="Expected hash, hex"),
    min_lock_time: int | None = typer.Option(None, "--min-lock-time", min=0),
    config_file: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Check a deposit's confirmations, destination, amount and lock terms."""
    setup_logging(log_level)
    connector = load_connector(currency, config_file)
    try:
        base_amount = connector.to_base_units(Decimal(amount))
    except InvalidOperation:
        logger.error(f"Invalid amount: {amount}")
        raise typer.Exit(1)
    try:
        hash_bytes = bytes.fromhex(secret_hash) if secret_hash else None
    except ValueError:
        logger.error(f"Invalid secret hash: {secret_hash}")
        raise typer.Exit(1)
    check = asyncio.run(
        _check_tx(connector, txid, destination, base_amount, hash_bytes, min_lock_time)
    )
    print(f"status:        {check.status.value}")
    print(f"confirmations: {check.confirmations}")
    if check.reason:
        print(f"reason:        {check.reason}")
    if not check.is_good:
        raise typer.Exit(2 if check.should_wait else 1)


async def _check_tx(
    connector: WalletConnector,
    txid: str,
    destination: str,
    amount: int,
    secret_hash: bytes | None,
    min_lock_time: int | None,
):
    try:
        return await connector.check_transaction(
            txid, destination, amount, secret_hash, min_lock_time
        )
    finally:
        await connector.close()


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
