"""
Operator - reads and stake management for one Streamr operator contract.

Allocation passes broadcast one ``stake`` transaction per sponsorship,
strictly one after the other through the transaction manager, and return
as soon as the last one is accepted by the node.  Confirmation of each
transaction is watched in the background; ``AllocationResult.wait_all``
blocks on them for callers that need to.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from typing import Any, Optional

from ..chain.tx import ConfirmedTransaction, TxManager
from ..errors import AllocationError, ConfirmationTimeoutError
from .plan import compound_plan, pro_rata_plan
from .results import (
    DeployedStake,
    OperatorDetails,
    SponsorshipsAndEarnings,
    UndelegationEntry,
    decode_uint,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIRM_TIMEOUT = 300.0
DEFAULT_FEE_PERCENT = 5


@dataclass
class AllocationResult:
    plan: dict[str, int] = field(default_factory=dict)
    tx_hashes: list[str] = field(default_factory=list)
    confirmations: dict[str, "Future[ConfirmedTransaction]"] = field(
        default_factory=dict, repr=False
    )

    def add(self, tx_hash: str, confirmation: "Future[ConfirmedTransaction]") -> None:
        self.tx_hashes.append(tx_hash)
        self.confirmations[tx_hash] = confirmation

    def wait_all(self, timeout: Optional[float] = None) -> list[ConfirmedTransaction]:
        """
        Block until every submitted transaction is confirmed.

        Raises:
            ConfirmationTimeoutError: For the first transaction still
                unconfirmed, either after its own watch timeout or after
                ``timeout`` seconds here
        """
        _, not_done = wait(list(self.confirmations.values()), timeout=timeout)
        for tx_hash, future in self.confirmations.items():
            if future in not_done:
                raise ConfirmationTimeoutError(tx_hash, timeout or 0)
        return [future.result() for future in self.confirmations.values()]

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan": {bucket: str(amount) for bucket, amount in self.plan.items()},
            "txHashes": self.tx_hashes,
        }


class Operator:
    def __init__(
        self,
        tx: TxManager,
        owner: str = "",
        confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT,
        fee_percent: int = DEFAULT_FEE_PERCENT,
    ) -> None:
        self.tx = tx
        self.owner = owner
        self.confirm_timeout = confirm_timeout
        self.fee_percent = fee_percent

    def details(self) -> OperatorDetails:
        return OperatorDetails(
            contract=self.tx.descriptor.address,
            owner=self.owner,
            sender=self.tx.address,
        )

    # ============ Reads ============

    def value_without_earnings(self) -> int:
        return decode_uint("valueWithoutEarnings", self.tx.call("valueWithoutEarnings"))

    def staked_into(self, sponsorship: str) -> int:
        return decode_uint("stakedInto", self.tx.call("stakedInto", [sponsorship]))

    def sponsorships_and_earnings(self) -> SponsorshipsAndEarnings:
        return SponsorshipsAndEarnings.from_values(self.tx.call("getSponsorshipsAndEarnings"))

    def deployed_stake(self, sponsorships: Optional[list[str]] = None) -> DeployedStake:
        """Current stake per sponsorship (every sponsorship by default)."""
        if sponsorships is None:
            sponsorships = self.sponsorships_and_earnings().addresses
        return DeployedStake({s: self.staked_into(s) for s in sponsorships})

    def undelegation_queue(self) -> list[UndelegationEntry]:
        return UndelegationEntry.list_from_values(self.tx.call("undelegationQueue"))

    # ============ Single transactions ============

    def stake(self, sponsorship: str, amount: int) -> str:
        return self.tx.send("stake", [sponsorship, amount])

    def reduce_stake_to(self, sponsorship: str, amount: int) -> str:
        return self.tx.send("reduceStakeTo", [sponsorship, amount])

    def withdraw_earnings(self, sponsorships: Optional[list[str]] = None) -> str:
        if sponsorships is None:
            sponsorships = self.sponsorships_and_earnings().addresses
        return self.tx.send("withdrawEarningsFromSponsorships", [list(sponsorships)])

    # ============ Allocation ============

    def stake_pro_rata(self) -> AllocationResult:
        """Deploy all free value across sponsorships pro rata to their stake."""
        sponsorships = self.sponsorships_and_earnings().addresses
        if not sponsorships:
            logger.info("No sponsorships to stake into")
            return AllocationResult()

        deployed = self.deployed_stake(sponsorships)
        value = self.value_without_earnings()
        unstaked = value - deployed.total
        logger.info(
            "Operator value %d, deployed %d, unstaked %d", value, deployed.total, unstaked
        )

        if unstaked <= 0:
            logger.info("Nothing to stake")
            return AllocationResult()
        if deployed.total == 0:
            logger.warning("No deployed stake to pro-rate against, leaving %d unstaked", unstaked)
            return AllocationResult()

        plan = pro_rata_plan(unstaked, deployed.by_sponsorship)
        return self._execute(plan, AllocationResult(plan=plan))

    def withdraw_earnings_and_compound(self) -> AllocationResult:
        """
        Withdraw earnings from every sponsorship, then restake them.

        Each sponsorship gets back what it earned minus the protocol fee.
        Sponsorships that earned but hold no stake are not staked into.
        """
        sae = self.sponsorships_and_earnings()
        earnings = sae.earnings_by_sponsorship()
        if not any(earnings.values()):
            logger.info("No earnings to compound")
            return AllocationResult()

        deployed = self.deployed_stake(sae.addresses)
        plan = compound_plan(earnings, deployed.by_sponsorship, self.fee_percent)
        result = AllocationResult(plan=plan)

        try:
            withdraw_hash = self.withdraw_earnings(sae.addresses)
        except Exception as exc:
            raise AllocationError(f"Withdrawing earnings failed: {exc}") from exc
        result.add(withdraw_hash, self.tx.watch(withdraw_hash, self.confirm_timeout))

        for bucket in earnings:
            if bucket not in plan and earnings[bucket] > 0:
                logger.info("Skipping %s: earnings but no deployed stake", bucket)

        return self._execute(plan, result)

    def _execute(self, plan: dict[str, int], result: AllocationResult) -> AllocationResult:
        for sponsorship, amount in plan.items():
            if amount == 0:
                continue
            try:
                tx_hash = self.stake(sponsorship, amount)
            except Exception as exc:
                raise AllocationError(
                    f"Staking {amount} into {sponsorship} failed after "
                    f"{len(result.tx_hashes)} transactions: {exc}",
                    result.tx_hashes,
                ) from exc
            logger.info("Staking %d into %s: %s", amount, sponsorship, tx_hash)
            result.add(tx_hash, self.tx.watch(tx_hash, self.confirm_timeout))
        return result
