"""
JSON-RPC client for chain nodes (Bitcoin Core and Ethereum style).

Every call returns an RpcReply. Transport faults, remote error objects and
malformed replies are all converted here and never raised to the caller.
The client does not retry; retry policy belongs to whoever drives the swap.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from loguru import logger

from xbcore.constants import DEFAULT_RPC_TIMEOUT


class RpcErrorKind(str, Enum):
    TRANSPORT = "transport"
    REMOTE = "remote"
    MALFORMED = "malformed"
    NOT_YET_AVAILABLE = "not_yet_available"


@dataclass
class RpcError:
    kind: RpcErrorKind
    message: str = ""
    code: int | None = None

    @property
    def retryable(self) -> bool:
        return self.kind in (RpcErrorKind.TRANSPORT, RpcErrorKind.NOT_YET_AVAILABLE)

    def __str__(self) -> str:
        if self.code is not None:
            return f"{self.kind.value} error {self.code}: {self.message}"
        return f"{self.kind.value} error: {self.message}"


@dataclass
class RpcReply:
    result: Any = None
    error: RpcError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def expect(self, *types: type) -> RpcReply:
        """
        Check the JSON type of a successful result.

        Returns a MALFORMED reply if the result is not one of `types`, the
        reply itself otherwise. Failed replies are passed through.
        """
        if self.error is not None or isinstance(self.result, types):
            return self
        names = "/".join(t.__name__ for t in types)
        return RpcReply(
            error=RpcError(
                RpcErrorKind.MALFORMED,
                f"expected {names} result, got {type(self.result).__name__}",
            )
        )


def failure(kind: RpcErrorKind, message: str, code: int | None = None) -> RpcReply:
    return RpcReply(error=RpcError(kind, message, code))


class JsonRpcClient:
    """
    Transport to a single chain node.

    Uses HTTP basic authentication and positional parameters. Bitcoin Core
    speaks JSON-RPC "1.0", Ethereum nodes "2.0".
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8332,
        user: str = "",
        password: str = "",
        use_tls: bool = False,
        jsonrpc_version: str = "1.0",
        timeout: float = DEFAULT_RPC_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        scheme = "https" if use_tls else "http"
        self.url = f"{scheme}://{host}:{port}/"
        self.jsonrpc_version = jsonrpc_version
        auth = (user, password) if user or password else None
        self.client = httpx.AsyncClient(timeout=timeout, auth=auth, transport=transport)
        self._request_id = 0

    async def call(self, method: str, params: list | None = None) -> RpcReply:
        """
        Make an RPC call.

        Args:
            method: RPC method name
            params: Positional method parameters

        Returns:
            RpcReply holding either the result or an RpcError
        """
        self._request_id += 1
        payload = {
            "jsonrpc": self.jsonrpc_version,
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        logger.debug(f"rpc call <{method}>")

        try:
            response = await self.client.post(self.url, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            return failure(RpcErrorKind.TRANSPORT, f"timeout: {e}")
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            return failure(RpcErrorKind.TRANSPORT, str(e) or type(e).__name__)

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            if response.status_code >= 400:
                # No JSON-RPC body, e.g. 401 on bad credentials
                logger.error(f"RPC call failed: {method} - HTTP {response.status_code}")
                return failure(RpcErrorKind.TRANSPORT, f"HTTP {response.status_code}")
            logger.error(f"RPC reply is not JSON: {method} - {e}")
            return failure(RpcErrorKind.MALFORMED, f"invalid JSON reply: {e}")

        if not isinstance(data, dict):
            logger.error(f"RPC reply is not an object: {method}")
            return failure(RpcErrorKind.MALFORMED, "reply is not a JSON object")

        error_info = data.get("error")
        if error_info is not None:
            if isinstance(error_info, dict):
                code = error_info.get("code")
                message = error_info.get("message", json.dumps(error_info))
            else:
                code = None
                message = str(error_info)
            logger.warning(f"RPC error from node: {method} - {code}: {message}")
            return failure(
                RpcErrorKind.REMOTE, str(message), code if isinstance(code, int) else None
            )

        if "result" not in data:
            logger.error(f"RPC reply without result: {method}")
            return failure(RpcErrorKind.MALFORMED, "reply has no result field")

        return RpcReply(result=data["result"])

    async def close(self) -> None:
        await self.client.aclose()
