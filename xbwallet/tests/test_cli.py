"""
Tests for the xbridge-wallet CLI
"""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from xbwallet.cli import app, setup_logging

runner = CliRunner()


@pytest.fixture
def chains_file(tmp_path):
    path = tmp_path / "chains.toml"
    path.write_text(
        """
[chains.BTC]
network = "regtest"
address_prefix = "0001"
fee_per_byte = 10
min_tx_fee = 1000
"""
    )
    return path


def test_fees(chains_file):
    result = runner.invoke(
        app, ["fees", "-c", "btc", "-i", "2", "-o", "2", "--config", str(chains_file)]
    )

    assert result.exit_code == 0
    # (2*148 + 2*34 + 10) * 10 and (2*180 + 2*34 + 10) * 10
    assert "deposit: 0.0000374 BTC" in result.stdout
    assert "payment: 0.0000438 BTC" in result.stdout


def test_fees_floor_at_min_tx_fee(chains_file):
    result = runner.invoke(
        app, ["fees", "-c", "BTC", "-i", "0", "-o", "0", "--config", str(chains_file)]
    )

    assert result.exit_code == 0
    assert "deposit: 0.00001 BTC" in result.stdout
    assert "payment: 0.00001 BTC" in result.stdout


def test_new_keypair(chains_file):
    result = runner.invoke(app, ["new-keypair", "-c", "BTC", "--config", str(chains_file)])

    assert result.exit_code == 0
    lines = dict(line.split(":", 1) for line in result.stdout.splitlines())
    assert len(lines["pubkey"].strip()) == 66
    assert len(lines["privkey"].strip()) == 64
    assert len(lines["key id"].strip()) == 40
    assert lines["address"].strip().startswith("bcrt1q")


def test_unconfigured_currency(chains_file):
    result = runner.invoke(app, ["fees", "-c", "DOGE", "--config", str(chains_file)])
    assert result.exit_code == 1


def test_missing_config_file(tmp_path):
    missing = tmp_path / "nope.toml"
    result = runner.invoke(app, ["fees", "-c", "BTC", "--config", str(missing)])
    assert result.exit_code == 1


def test_invalid_config_file(tmp_path):
    path = tmp_path / "chains.toml"
    path.write_text('[chains.BTC]\naddress_prefix = "01"\n')

    result = runner.invoke(app, ["fees", "-c", "BTC", "--config", str(path)])

    assert result.exit_code == 1


def test_config_from_environment(chains_file):
    result = runner.invoke(
        app, ["fees", "-c", "BTC"], env={"XBRIDGE_CHAINS_FILE": str(chains_file)}
    )
    assert result.exit_code == 0
    assert "deposit:" in result.stdout


def test_new_keypair_account_chain(tmp_path):
    path = tmp_path / "chains.toml"
    path.write_text(
        """
[chains.ETH]
family = "account_contract"
port = 8545
address_prefix = "0002"
contract_address = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
chain_id = 1337
"""
    )

    result = runner.invoke(app, ["new-keypair", "-c", "ETH", "--config", str(path)])

    assert result.exit_code == 0
    lines = dict(line.split(":", 1) for line in result.stdout.splitlines())
    assert "key id" not in lines
    assert lines["address"].strip().startswith("0x")
    assert len(lines["address"].strip()) == 42


def test_check_tx_rejects_bad_secret_hash(chains_file):
    result = runner.invoke(
        app,
        [
            "check-tx",
            "aa" * 32,
            "-d",
            "bcrt1qdestination",
            "-a",
            "0.1",
            "-c",
            "BTC",
            "--secret-hash",
            "zz",
            "--config",
            str(chains_file),
        ],
    )
    assert result.exit_code == 1


def test_log_level_defaults_to_setting(monkeypatch):
    monkeypatch.setenv("XBRIDGE_LOG_LEVEL", "debug")
    with patch("xbwallet.cli.logger") as mock_logger:
        setup_logging(None)
    assert mock_logger.add.call_args.kwargs["level"] == "DEBUG"


def test_log_level_option_wins(monkeypatch):
    monkeypatch.setenv("XBRIDGE_LOG_LEVEL", "debug")
    with patch("xbwallet.cli.logger") as mock_logger:
        setup_logging("warning")
    assert mock_logger.add.call_args.kwargs["level"] == "WARNING"
