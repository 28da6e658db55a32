# src/yieldfarm/ledger/rewards.py
from __future__ import annotations

"""Pure integer math for the farm and the vesting vault.

Every division truncates toward zero (all operands are non-negative). No floats.
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from yieldfarm.ledger.constants import BPS_DENOMINATOR, DEV_REWARD_DIVISOR, MAX_BPS, SCALE

Json = Dict[str, Any]


@dataclass
class RewardError(RuntimeError):
    code: str
    reason: str
    details: Json

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}:{self.details}"


def _require_non_negative(name: str, v: int) -> int:
    i = int(v)
    if i < 0:
        raise RewardError("invalid_input", f"{name}_negative", {name: i})
    return i


def _require_bps(name: str, v: int) -> int:
    i = _require_non_negative(name, v)
    if i > MAX_BPS:
        raise RewardError("invalid_input", f"{name}_above_max", {name: i, "max": MAX_BPS})
    return i


def reward_multiplier(from_block: int, to_block: int) -> int:
    """Linear block multiplier over [from_block, to_block)."""
    f = int(from_block)
    t = int(to_block)
    if t < f:
        raise RewardError("invalid_input", "window_reversed", {"from": f, "to": t})
    return t - f


def pool_accrual(multiplier: int, rate_per_block: int, weight: int, total_weight: int) -> int:
    """Reward generated for one pool over a window, by weight share."""
    tw = _require_non_negative("total_weight", total_weight)
    if tw == 0:
        return 0
    m = _require_non_negative("multiplier", multiplier)
    r = _require_non_negative("rate_per_block", rate_per_block)
    w = _require_non_negative("weight", weight)
    return (m * r * w) // tw


def dev_share(accrual: int) -> int:
    return _require_non_negative("accrual", accrual) // DEV_REWARD_DIVISOR


def acc_per_share_delta(accrual: int, staked_balance: int) -> int:
    staked = _require_non_negative("staked_balance", staked_balance)
    if staked == 0:
        return 0
    return (_require_non_negative("accrual", accrual) * SCALE) // staked


def accumulated_reward(amount: int, acc_reward_per_share: int) -> int:
    """amount * acc / SCALE; this is also the reward_debt checkpoint."""
    return (int(amount) * int(acc_reward_per_share)) // SCALE


def pending_reward(amount: int, acc_reward_per_share: int, reward_debt: int) -> int:
    return accumulated_reward(amount, acc_reward_per_share) - int(reward_debt)


def bps_of(amount: int, bps: int) -> int:
    return (_require_non_negative("amount", amount) * _require_bps("bps", bps)) // BPS_DENOMINATOR


def split_deposit_fee(amount: int, deposit_fee_bps: int) -> Tuple[int, int]:
    """Return (credited, fee). credited + fee == amount exactly."""
    fee = bps_of(amount, deposit_fee_bps)
    return int(amount) - fee, fee


def split_payout(total: int, lock_fraction_bps: int) -> Tuple[int, int]:
    """Return (claimable, locked). claimable + locked == total exactly."""
    locked = bps_of(total, lock_fraction_bps)
    return int(total) - locked, locked


def decay_rate(rate_per_block: int, periods: int, reduction_rate_bps: int, minimum_rate_per_block: int) -> int:
    """Compound the rate down once per period, then floor it.

    rate = rate * (10000 - reduction) / 10000, repeated `periods` times.
    """
    rate = _require_non_negative("rate_per_block", rate_per_block)
    n = _require_non_negative("periods", periods)
    keep = BPS_DENOMINATOR - _require_bps("reduction_rate_bps", reduction_rate_bps)
    floor = _require_non_negative("minimum_rate_per_block", minimum_rate_per_block)

    for _ in range(n):
        if rate <= floor:
            # further compounding can only go lower; the floor restores it
            break
        rate = (rate * keep) // BPS_DENOMINATOR

    return max(rate, floor)


def vested_amount(
    total_locked: int,
    total_released: int,
    *,
    now_block: int,
    start_block: int,
    end_block: int,
) -> int:
    """Amount an account may unlock right now.

    Piecewise linear over [start_block, end_block): nothing before the window,
    everything remaining at or after its end, and in between the whole
    historical lock vests pro rata minus what was already released.
    """
    locked = _require_non_negative("total_locked", total_locked)
    released = _require_non_negative("total_released", total_released)
    now = int(now_block)
    start = int(start_block)
    end = int(end_block)
    if end <= start:
        raise RewardError("invalid_input", "vesting_window_empty", {"start": start, "end": end})

    if now < start:
        return 0
    if now >= end:
        return max(locked - released, 0)
    vested = (locked * (now - start)) // (end - start)
    return max(vested - released, 0)


__all__ = [
    "RewardError",
    "acc_per_share_delta",
    "accumulated_reward",
    "bps_of",
    "decay_rate",
    "dev_share",
    "pending_reward",
    "pool_accrual",
    "reward_multiplier",
    "split_deposit_fee",
    "split_payout",
    "vested_amount",
]
