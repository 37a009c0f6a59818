"""
Transaction Manager - the single path by which transactions leave the process.

Owns the signing key and the nonce counter.  The counter is seeded from the
chain's pending nonce when the manager is built and afterwards only moves
forward, by one, after a successful broadcast.  Sends hold the counter for
their whole build/sign/broadcast sequence, so concurrent callers are
serialized and every broadcast uses a distinct, gap-free nonce.  A send that
fails before the broadcast goes through leaves the counter untouched.

Only one manager may run per signing key: two managers sharing a key read the
same starting nonce and will collide.

Confirmation waits are not serialized.  ``watch`` runs them on a bounded
background pool so that callers can keep sending while earlier transactions
are being mined.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import (
    BroadcastError,
    ConfirmationTimeoutError,
    GasEstimationError,
    RemoteError,
    SigningError,
)
from ..keys import get_account
from .abi import ContractDescriptor
from .rpc import ChainClient, SignedTx

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 3_000_000
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_PENDING_WATCHES = 1000


@dataclass(frozen=True)
class PendingTransaction:
    tx_hash: str
    method: str
    nonce: int
    submitted_at: float = field(default_factory=time.monotonic)

    @property
    def age(self) -> float:
        return time.monotonic() - self.submitted_at


@dataclass(frozen=True)
class ConfirmedTransaction:
    tx_hash: str
    record: dict[str, Any]

    @property
    def block_number(self) -> Optional[int]:
        block = self.record.get("blockNumber")
        if isinstance(block, str):
            return int(block, 16)
        return block


class TxManager:
    def __init__(
        self,
        client: ChainClient,
        descriptor: ContractDescriptor,
        private_key: Optional[str] = None,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_pending_watches: int = DEFAULT_MAX_PENDING_WATCHES,
        watch_workers: int = 16,
    ) -> None:
        self._client = client
        self._descriptor = descriptor
        self._account = get_account(private_key)
        self.gas_limit = gas_limit
        self.poll_interval = poll_interval

        self._nonce_lock = threading.Lock()
        self._nonce = client.pending_nonce(self._account.address)

        self._stopping = threading.Event()
        self._watch_slots = threading.BoundedSemaphore(max_pending_watches)
        self._watchers = ThreadPoolExecutor(
            max_workers=watch_workers, thread_name_prefix="tx-watch"
        )
        logger.info(
            "Transaction manager ready for %s on %s, starting nonce %d",
            self._account.address,
            descriptor.address,
            self._nonce,
        )

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def descriptor(self) -> ContractDescriptor:
        return self._descriptor

    @property
    def nonce(self) -> int:
        """Next nonce to be used (blocks while a send holds the counter)."""
        with self._nonce_lock:
            return self._nonce

    # ============ Reads ============

    def call(self, method: str, args: Optional[list] = None) -> tuple:
        """Simulate ``method`` against the latest block and decode its outputs."""
        data = self._descriptor.encode_call(method, args)
        output = self._client.call(self._descriptor.address, data)
        return self._descriptor.decode_result(method, output)

    # ============ Sends ============

    def send(self, method: str, args: Optional[list] = None) -> str:
        """Build, sign and broadcast a call to ``method``.

        Returns the transaction hash as soon as the node accepts it.
        """
        return self.submit(method, args).tx_hash

    def submit(self, method: str, args: Optional[list] = None) -> PendingTransaction:
        calldata = self._descriptor.encode_call(method, args)

        with self._nonce_lock:
            nonce = self._nonce
            logger.debug("Nonce %d checked out for %s", nonce, method)

            try:
                gas_price = self._client.estimate_gas_price()
                chain_id = self._client.chain_id()
            except RemoteError as exc:
                raise GasEstimationError(f"Cannot price {method} transaction: {exc}") from exc

            signed = self._sign(
                {
                    "to": self._descriptor.address,
                    "data": "0x" + calldata.hex(),
                    "value": 0,
                    "nonce": nonce,
                    "gas": self.gas_limit,
                    "gasPrice": gas_price,
                    "chainId": chain_id,
                },
                calldata,
            )

            try:
                self._client.broadcast(signed)
            except BroadcastError:
                raise
            except RemoteError as exc:
                raise BroadcastError(str(exc)) from exc

            self._nonce = nonce + 1

        logger.info("Transaction sent: %s %s (nonce %d)", method, signed.tx_hash, nonce)
        return PendingTransaction(tx_hash=signed.tx_hash, method=method, nonce=nonce)

    def _sign(self, tx: dict[str, Any], calldata: bytes) -> SignedTx:
        # eth-account surfaces field validation through rlp and eth-utils
        # exception types as well as ValueError/TypeError.
        try:
            signed = self._account.sign_transaction(tx)
        except Exception as exc:
            raise SigningError(f"Failed to sign transaction: {exc}") from exc
        return SignedTx(
            raw=bytes(signed.raw_transaction),
            tx_hash="0x" + bytes(signed.hash).hex(),
            nonce=tx["nonce"],
            to=tx["to"],
            data=calldata,
        )

    def send_and_wait(
        self, method: str, args: Optional[list], timeout: float
    ) -> ConfirmedTransaction:
        pending = self.submit(method, args)
        confirmed = self.wait_for_tx(pending.tx_hash, timeout)
        logger.info("%s %s mined after %.1fs", method, pending.tx_hash, pending.age)
        return confirmed

    # ============ Confirmation ============

    def wait_for_tx(self, tx_hash: str, timeout: float) -> ConfirmedTransaction:
        """
        Poll until ``tx_hash`` is mined.

        A transaction the node does not know yet is normal right after
        submission and is simply polled again.

        Raises:
            ConfirmationTimeoutError: If still unmined after ``timeout`` seconds
        """
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ConfirmationTimeoutError(tx_hash, timeout)
            if self._stopping.wait(min(self.poll_interval, remaining)):
                raise ConfirmationTimeoutError(tx_hash, timeout)

            try:
                lookup = self._client.lookup_by_hash(tx_hash)
            except RemoteError as exc:
                logger.debug("Waiting for %s to be recognized by the network: %s", tx_hash, exc)
                continue

            if not lookup.found:
                logger.debug("Waiting for %s to be recognized by the network", tx_hash)
                continue
            if not lookup.pending:
                return ConfirmedTransaction(tx_hash=tx_hash, record=lookup.record or {})

    def watch(self, tx_hash: str, timeout: float) -> "Future[ConfirmedTransaction]":
        """Wait for ``tx_hash`` in the background.

        Blocks only when the watch queue is full.  The outcome is logged;
        the returned future may be ignored.
        """
        self._watch_slots.acquire()
        try:
            future = self._watchers.submit(self.wait_for_tx, tx_hash, timeout)
        except RuntimeError:
            self._watch_slots.release()
            raise
        future.add_done_callback(functools.partial(self._watch_done, tx_hash))
        return future

    def _watch_done(self, tx_hash: str, future: "Future[ConfirmedTransaction]") -> None:
        self._watch_slots.release()
        if future.cancelled():
            logger.info("Stopped watching %s", tx_hash)
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Transaction %s unconfirmed: %s", tx_hash, exc)
        else:
            logger.info("Transaction %s has been mined", tx_hash)

    def close(self, wait: bool = True) -> None:
        """Shut down background watches.

        With ``wait=False`` running watches give up at their next poll.
        """
        if not wait:
            self._stopping.set()
        self._watchers.shutdown(wait=wait, cancel_futures=not wait)

    def __enter__(self) -> "TxManager":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
