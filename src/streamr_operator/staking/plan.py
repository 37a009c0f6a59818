"""Pro-rata allocation of an integer amount across sponsorships."""

from __future__ import annotations

from typing import Mapping


def pro_rata_plan(unstaked: int, deployed: Mapping[str, int]) -> dict[str, int]:
    """
    Split ``unstaked`` across buckets in proportion to ``deployed``.

    Each share is ``unstaked * d // total`` (multiply first, integer maths
    throughout).  Floor division can leave a shortfall; all of it goes to
    the first bucket in iteration order, so the plan always sums to exactly
    ``unstaked``.

    Args:
        unstaked: Amount to distribute, in wei (>= 0)
        deployed: Current stake per bucket, in wei

    Returns:
        Planned amount per bucket, same keys and order as ``deployed``

    Raises:
        ValueError: On a negative amount, an empty mapping or a
            non-positive total stake
    """
    if unstaked < 0:
        raise ValueError(f"Cannot allocate a negative amount: {unstaked}")
    if not deployed:
        raise ValueError("No buckets to allocate to")
    if any(amount < 0 for amount in deployed.values()):
        raise ValueError("Deployed amounts must not be negative")

    total = sum(deployed.values())
    if total <= 0:
        raise ValueError("Total deployed stake must be positive")

    plan = {bucket: unstaked * amount // total for bucket, amount in deployed.items()}

    shortfall = unstaked - sum(plan.values())
    if shortfall:
        first = next(iter(plan))
        plan[first] += shortfall

    return plan


def compound_plan(
    earnings: Mapping[str, int],
    deployed: Mapping[str, int],
    fee_percent: int,
) -> dict[str, int]:
    """
    Restake each bucket's withdrawn earnings, net of the protocol fee.

    Buckets without earnings or without existing stake are left out.
    """
    if not 0 <= fee_percent <= 100:
        raise ValueError(f"Fee must be a percentage, got {fee_percent}")

    plan = {}
    for bucket, earned in earnings.items():
        if earned <= 0 or deployed.get(bucket, 0) <= 0:
            continue
        plan[bucket] = earned * (100 - fee_percent) // 100
    return plan
