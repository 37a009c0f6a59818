"""
Chain client boundary and its JSON-RPC implementation.

The transaction manager only talks to the ``ChainClient`` protocol, so the
network can be swapped for an in-memory double in tests.
``HttpChainClient`` is the lightweight production implementation: httpx for
HTTP, hex decoding by hand, no web3.py.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from ..errors import BroadcastError, RemoteError

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://polygon-rpc.com"


@dataclass(frozen=True)
class SignedTx:
    """A signed transaction ready for broadcast."""

    raw: bytes
    tx_hash: str
    nonce: int
    to: str
    data: bytes


@dataclass(frozen=True)
class TxLookup:
    found: bool
    pending: bool = False
    record: Optional[dict[str, Any]] = None


class ChainClient(Protocol):
    def estimate_gas_price(self) -> int:
        ...

    def chain_id(self) -> int:
        ...

    def pending_nonce(self, address: str) -> int:
        ...

    def call(self, target: str, data: bytes) -> bytes:
        ...

    def broadcast(self, signed_tx: SignedTx) -> None:
        ...

    def lookup_by_hash(self, tx_hash: str) -> TxLookup:
        ...


def _hex_to_int(value: Any) -> int:
    if not isinstance(value, str):
        raise RemoteError(f"Expected hex quantity, got {value!r}")
    try:
        return int(value, 16)
    except ValueError as exc:
        raise RemoteError(f"Invalid hex quantity {value!r}") from exc


def _hex_to_bytes(value: Any) -> bytes:
    if not isinstance(value, str):
        raise RemoteError(f"Expected hex data, got {value!r}")
    raw = value[2:] if value.startswith("0x") else value
    try:
        return bytes.fromhex(raw)
    except ValueError as exc:
        raise RemoteError(f"Invalid hex data {value!r}") from exc


class HttpChainClient:
    """JSON-RPC chain client over a shared httpx connection pool."""

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        timeout: float = 30,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self._client = httpx.Client(timeout=timeout, transport=transport)
        self._ids = itertools.count(1)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpChainClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _rpc_call(self, method: str, params: list, error_cls: type[RemoteError] = RemoteError) -> Any:
        """
        Make a JSON-RPC call.

        Args:
            method: RPC method name (e.g., "eth_call")
            params: RPC parameters
            error_cls: Error type raised for transport and node errors

        Returns:
            Result field from the RPC response
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            response = self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise error_cls(f"{method} failed: {exc}") from exc

        if not isinstance(data, dict):
            raise error_cls(f"Malformed response from {method}: {data!r}")
        if "error" in data:
            raise error_cls(f"RPC error from {method}: {data['error']}")

        return data.get("result")

    def estimate_gas_price(self) -> int:
        return _hex_to_int(self._rpc_call("eth_gasPrice", []))

    def chain_id(self) -> int:
        return _hex_to_int(self._rpc_call("eth_chainId", []))

    def pending_nonce(self, address: str) -> int:
        return _hex_to_int(self._rpc_call("eth_getTransactionCount", [address, "pending"]))

    def call(self, target: str, data: bytes) -> bytes:
        result = self._rpc_call(
            "eth_call",
            [{"to": target, "data": "0x" + data.hex()}, "latest"],
        )
        return _hex_to_bytes(result if result is not None else "0x")

    def broadcast(self, signed_tx: SignedTx) -> None:
        returned = self._rpc_call(
            "eth_sendRawTransaction",
            ["0x" + signed_tx.raw.hex()],
            error_cls=BroadcastError,
        )
        if isinstance(returned, str) and returned.lower() != signed_tx.tx_hash.lower():
            logger.warning(
                "Node returned hash %s for locally computed %s", returned, signed_tx.tx_hash
            )

    def lookup_by_hash(self, tx_hash: str) -> TxLookup:
        record = self._rpc_call("eth_getTransactionByHash", [tx_hash])
        if record is None:
            return TxLookup(found=False)
        return TxLookup(found=True, pending=record.get("blockNumber") is None, record=record)
