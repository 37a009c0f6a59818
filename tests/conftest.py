"""Shared fixtures: a minimal operator ABI and an in-memory chain."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Iterator, Optional

import pytest
from eth_abi import decode, encode
from eth_account import Account

from streamr_operator.chain.abi import ContractDescriptor
from streamr_operator.chain.rpc import SignedTx, TxLookup
from streamr_operator.chain.tx import TxManager
from streamr_operator.errors import RemoteError
from streamr_operator.staking.operator import Operator

CONTRACT = "0x1111111111111111111111111111111111111111"
SPONSOR_A = "0x2000000000000000000000000000000000000001"
SPONSOR_B = "0x2000000000000000000000000000000000000002"
SPONSOR_C = "0x2000000000000000000000000000000000000003"

OPERATOR_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "valueWithoutEarnings",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "stakedInto",
        "inputs": [{"name": "", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "getSponsorshipsAndEarnings",
        "inputs": [],
        "outputs": [
            {"name": "addresses", "type": "address[]"},
            {"name": "earnings", "type": "uint256[]"},
            {"name": "maxAllowedEarnings", "type": "uint256"},
        ],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "undelegationQueue",
        "inputs": [],
        "outputs": [
            {
                "name": "queue",
                "type": "tuple[]",
                "components": [
                    {"name": "delegator", "type": "address"},
                    {"name": "amountWei", "type": "uint256"},
                    {"name": "timestamp", "type": "uint256"},
                ],
            }
        ],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "stake",
        "inputs": [
            {"name": "sponsorship", "type": "address"},
            {"name": "amountWei", "type": "uint256"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "reduceStakeTo",
        "inputs": [
            {"name": "sponsorship", "type": "address"},
            {"name": "targetStakeWei", "type": "uint256"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "withdrawEarningsFromSponsorships",
        "inputs": [{"name": "sponsorshipAddresses", "type": "address[]"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {"type": "event", "name": "Staked", "inputs": [], "anonymous": False},
]


class FakeChainClient:
    """In-memory ChainClient double.

    Reads are served by ``reads[method](*args)`` returning the output tuple.
    Broadcasts are recorded; ``broadcast_errors`` maps a broadcast attempt
    (0-based) to the exception it raises.  ``lookup_responses`` is consumed
    one per lookup before falling back to ``default_lookup``.
    """

    def __init__(self, descriptor: ContractDescriptor, start_nonce: int = 7) -> None:
        self.descriptor = descriptor
        self.start_nonce = start_nonce
        self.gas_price = 30 * 10**9
        self.network_id = 137
        self.reads: dict[str, Callable[..., tuple]] = {}
        self.broadcasts: list[SignedTx] = []
        self.broadcast_errors: dict[int, Exception] = {}
        self.broadcast_delay = 0.0
        self.gas_error: Optional[Exception] = None
        self.lookup_responses: list[Any] = []
        self.default_lookup = TxLookup(found=True, pending=False, record={"blockNumber": "0x10"})
        self.lookup_calls = 0
        self.closed = False
        self._attempts = 0
        self._lock = threading.Lock()

    def estimate_gas_price(self) -> int:
        if self.gas_error is not None:
            raise self.gas_error
        return self.gas_price

    def chain_id(self) -> int:
        return self.network_id

    def pending_nonce(self, address: str) -> int:
        return self.start_nonce

    def call(self, target: str, data: bytes) -> bytes:
        spec = self.descriptor.method_for_selector(data[:4])
        args = decode(list(spec.inputs), data[4:]) if spec.inputs else ()
        if spec.name not in self.reads:
            raise RemoteError(f"execution reverted: {spec.name}")
        values = self.reads[spec.name](*args)
        return encode(list(spec.outputs), list(values))

    def broadcast(self, signed_tx: SignedTx) -> None:
        if self.broadcast_delay:
            time.sleep(self.broadcast_delay)
        with self._lock:
            attempt = self._attempts
            self._attempts += 1
            if attempt in self.broadcast_errors:
                raise self.broadcast_errors[attempt]
            self.broadcasts.append(signed_tx)

    def lookup_by_hash(self, tx_hash: str) -> TxLookup:
        with self._lock:
            self.lookup_calls += 1
            if self.lookup_responses:
                response = self.lookup_responses.pop(0)
                if isinstance(response, Exception):
                    raise response
                return response
            return self.default_lookup

    def close(self) -> None:
        self.closed = True

    def sent_calls(self) -> list[tuple[str, list]]:
        """Decode every broadcast into (method, args)."""
        calls = []
        for signed in self.broadcasts:
            spec = self.descriptor.method_for_selector(signed.data[:4])
            args = decode(list(spec.inputs), signed.data[4:]) if spec.inputs else ()
            calls.append((spec.name, [list(a) if isinstance(a, tuple) else a for a in args]))
        return calls


def new_key() -> tuple[str, str]:
    """Fresh (private_key_hex, address) pair."""
    account = Account.create()
    return "0x" + bytes(account.key).hex(), account.address


@pytest.fixture()
def descriptor() -> ContractDescriptor:
    return ContractDescriptor.from_abi(CONTRACT, OPERATOR_ABI)


@pytest.fixture()
def chain(descriptor: ContractDescriptor) -> FakeChainClient:
    return FakeChainClient(descriptor)


@pytest.fixture()
def wallet() -> tuple[str, str]:
    return new_key()


@pytest.fixture()
def manager(chain: FakeChainClient, descriptor: ContractDescriptor, wallet: tuple[str, str]) -> Iterator[TxManager]:
    tx = TxManager(chain, descriptor, private_key=wallet[0], poll_interval=0.01)
    yield tx
    tx.close(wait=False)


def set_operator_state(
    chain: FakeChainClient,
    value: int,
    stakes: dict[str, int],
    earnings: Optional[dict[str, int]] = None,
) -> None:
    earnings = earnings or {}
    addresses = list(stakes)
    chain.reads["valueWithoutEarnings"] = lambda: (value,)
    chain.reads["stakedInto"] = lambda addr: (stakes[addr],)
    chain.reads["getSponsorshipsAndEarnings"] = lambda: (
        addresses,
        [earnings.get(a, 0) for a in addresses],
        10**21,
    )


@pytest.fixture()
def operator(manager: TxManager) -> Operator:
    return Operator(manager, owner=CONTRACT, confirm_timeout=2.0)
