"""
Shared fixtures: chain configs and a scripted JSON-RPC node.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from xbcore.constants import WEI_PER_ETHER
from xbcore.rpc import JsonRpcClient

from xbwallet.config import ChainConfig, ChainFamily

ETH_CONTRACT = "0x5fbdb2315678afecb367f032d93f642f64180aa3"


class FakeNode:
    """
    JSON-RPC node answering from a method table, behind httpx.MockTransport.

    A table value is either a reply dict ({"result": ...} or {"error": ...})
    or a callable taking the params list and returning one. Callables may
    raise httpx errors to simulate transport faults. Unknown methods get a
    -32601 error.
    """

    def __init__(self) -> None:
        self.table: dict[str, dict | Callable[[list], dict]] = {}
        self.calls: list[tuple[str, list]] = []

    def on(self, method: str, result: Any = None, error: dict | None = None) -> None:
        self.table[method] = {"error": error} if error is not None else {"result": result}

    def on_call(self, method: str, handler: Callable[[list], dict]) -> None:
        self.table[method] = handler

    def down(self) -> None:
        """Make every request fail to connect."""
        self.table.clear()
        self.table["*"] = {}

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def params(self, method: str) -> list:
        return next(params for name, params in self.calls if name == method)

    def handle(self, request: httpx.Request) -> httpx.Response:
        if "*" in self.table:
            raise httpx.ConnectError("connection refused", request=request)

        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        self.calls.append((method, params))

        entry = self.table.get(method)
        if entry is None:
            reply: dict = {"error": {"code": -32601, "message": "Method not found"}}
        elif callable(entry):
            reply = entry(params)
        else:
            reply = entry
        return httpx.Response(200, json={"result": None, "error": None, "id": body["id"], **reply})

    def client(self, jsonrpc_version: str = "1.0") -> JsonRpcClient:
        return JsonRpcClient(
            transport=httpx.MockTransport(self.handle), jsonrpc_version=jsonrpc_version
        )


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def btc_config() -> ChainConfig:
    return ChainConfig(
        currency="btc",
        family=ChainFamily.UTXO_SCRIPT,
        network="regtest",
        port=18443,
        address_prefix="0001",
        fee_per_byte=10,
        min_tx_fee=1_000,
        block_time=600,
        required_confirmations=6,
    )


@pytest.fixture
def eth_config() -> ChainConfig:
    return ChainConfig(
        currency="eth",
        family=ChainFamily.ACCOUNT_CONTRACT,
        port=8545,
        address_prefix="0002",
        fee_per_byte=10,
        min_tx_fee=21_000,
        coin=WEI_PER_ETHER,
        block_time=60,
        required_confirmations=6,
        contract_address=ETH_CONTRACT,
        chain_id=1337,
    )
