"""
Error taxonomy for the operator agent.

Every failure leaving the chain layer is one of these types.  Errors raised
before a transaction reaches the network carry ``nonce_consumed = False``:
the nonce is handed to the next caller unchanged and the call is safe to
retry.  A confirmation timeout happens after broadcast, so its nonce is gone
and the outcome must be reconciled by hash.
"""

from __future__ import annotations

from typing import Optional


class OperatorError(Exception):
    nonce_consumed = False


class DescriptorError(OperatorError, ValueError):
    """Contract ABI is malformed or unusable."""


class EncodingError(OperatorError, ValueError):
    """Arguments don't match the method's declared inputs."""


class DecodingError(OperatorError):
    """Returned data doesn't match the method's declared outputs."""


class RemoteError(OperatorError):
    """Transport failure, node error or reverted call."""


class BroadcastError(RemoteError):
    """The node refused the signed transaction."""


class GasEstimationError(OperatorError):
    """Gas price or chain id could not be fetched."""


class SigningError(OperatorError):
    """The transaction could not be signed locally."""


class ConfirmationTimeoutError(OperatorError, TimeoutError):
    nonce_consumed = True

    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(
            f"Transaction {tx_hash} not confirmed within {timeout}s "
            f"(it may still be mined, check by hash)"
        )
        self.tx_hash = tx_hash
        self.timeout = timeout


class AllocationError(OperatorError):
    """A plan was aborted part way through.

    ``tx_hashes`` lists the transactions already broadcast before the
    failure; they are not rolled back.  The failing error is chained as
    ``__cause__``.
    """

    def __init__(self, message: str, tx_hashes: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.tx_hashes = list(tx_hashes or [])


__all__ = [
    "AllocationError",
    "BroadcastError",
    "ConfirmationTimeoutError",
    "DecodingError",
    "DescriptorError",
    "EncodingError",
    "GasEstimationError",
    "OperatorError",
    "RemoteError",
    "SigningError",
]
