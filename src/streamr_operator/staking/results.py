"""
Typed results for the operator contract's read methods.

Each read has its own structure and a ``from_values`` decoder that checks
the shape of the ABI-decoded tuple and raises ``DecodingError`` on anything
unexpected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from ..errors import DecodingError


def _expect_len(method: str, values: Sequence[Any], count: int) -> None:
    if len(values) != count:
        raise DecodingError(f"{method} returned {len(values)} values, expected {count}")


def _uint(method: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DecodingError(f"{method} returned {value!r} where an amount was expected")
    return value


def _address(method: str, value: Any) -> str:
    if not isinstance(value, str) or not value.startswith("0x") or len(value) != 42:
        raise DecodingError(f"{method} returned {value!r} where an address was expected")
    return value


def decode_uint(method: str, values: Sequence[Any]) -> int:
    _expect_len(method, values, 1)
    return _uint(method, values[0])


@dataclass(frozen=True)
class SponsorshipsAndEarnings:
    addresses: list[str]
    earnings: list[int]
    max_allowed_earnings: int

    @classmethod
    def from_values(cls, values: Sequence[Any]) -> "SponsorshipsAndEarnings":
        method = "getSponsorshipsAndEarnings"
        _expect_len(method, values, 3)
        addresses, earnings, max_allowed = values
        if not isinstance(addresses, (list, tuple)) or not isinstance(earnings, (list, tuple)):
            raise DecodingError(f"{method} returned non-array addresses or earnings")
        if len(addresses) != len(earnings):
            raise DecodingError(
                f"{method} returned {len(addresses)} addresses but {len(earnings)} earnings"
            )
        return cls(
            addresses=[_address(method, a) for a in addresses],
            earnings=[_uint(method, e) for e in earnings],
            max_allowed_earnings=_uint(method, max_allowed),
        )

    def earnings_by_sponsorship(self) -> dict[str, int]:
        return dict(zip(self.addresses, self.earnings))

    def to_dict(self) -> dict[str, Any]:
        return {
            "addresses": self.addresses,
            "earnings": [str(e) for e in self.earnings],
            "maxAllowedEarnings": str(self.max_allowed_earnings),
        }


@dataclass(frozen=True)
class DeployedStake:
    by_sponsorship: dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.by_sponsorship.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "deployedBySponsorship": {a: str(v) for a, v in self.by_sponsorship.items()},
            "totalDeployed": str(self.total),
        }


@dataclass(frozen=True)
class UndelegationEntry:
    delegator: str
    amount: int
    timestamp: int

    @classmethod
    def list_from_values(cls, values: Sequence[Any]) -> list["UndelegationEntry"]:
        method = "undelegationQueue"
        _expect_len(method, values, 1)
        entries = values[0]
        if not isinstance(entries, (list, tuple)):
            raise DecodingError(f"{method} returned {entries!r} where an array was expected")
        result = []
        for entry in entries:
            if not isinstance(entry, (list, tuple)) or len(entry) != 3:
                raise DecodingError(f"{method} returned malformed entry {entry!r}")
            delegator, amount, timestamp = entry
            result.append(
                cls(
                    delegator=_address(method, delegator),
                    amount=_uint(method, amount),
                    timestamp=_uint(method, timestamp),
                )
            )
        return result

    def to_dict(self) -> dict[str, Any]:
        return {"delegator": self.delegator, "amount": str(self.amount), "timestamp": self.timestamp}


@dataclass(frozen=True)
class OperatorDetails:
    contract: str
    owner: str
    sender: str

    def to_dict(self) -> dict[str, str]:
        return {"contractAddr": self.contract, "ownerAddr": self.owner, "senderAddr": self.sender}
