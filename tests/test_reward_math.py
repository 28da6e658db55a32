# tests/test_reward_math.py
from __future__ import annotations

import pytest

from yieldfarm.ledger.constants import SCALE
from yieldfarm.ledger.rewards import (
    RewardError,
    acc_per_share_delta,
    accumulated_reward,
    decay_rate,
    dev_share,
    pending_reward,
    pool_accrual,
    reward_multiplier,
    split_deposit_fee,
    split_payout,
    vested_amount,
)


def test_pool_accrual_splits_by_weight_and_truncates() -> None:
    # 10 blocks at 1/block; pool holds 1 of 4 weight units.
    assert pool_accrual(reward_multiplier(0, 10), 1, 1, 4) == 2
    assert pool_accrual(10, 1, 3, 4) == 7
    assert pool_accrual(10, 1000, 1, 0) == 0


def test_reward_multiplier_rejects_reversed_window() -> None:
    assert reward_multiplier(5, 5) == 0
    with pytest.raises(RewardError) as ei:
        reward_multiplier(10, 9)
    assert ei.value.reason == "window_reversed"


def test_dev_share_is_a_tenth_floor() -> None:
    assert dev_share(0) == 0
    assert dev_share(9) == 0
    assert dev_share(10) == 1
    assert dev_share(10_999) == 1_099


def test_accumulator_roundtrip_for_a_single_staker() -> None:
    acc = acc_per_share_delta(2, 100)
    assert acc == 2 * SCALE // 100
    assert accumulated_reward(100, acc) == 2
    assert pending_reward(100, acc, 0) == 2
    assert pending_reward(100, acc, accumulated_reward(100, acc)) == 0
    assert acc_per_share_delta(1000, 0) == 0


def test_fee_and_payout_splits_are_exact() -> None:
    assert split_deposit_fee(1000, 200) == (980, 20)
    assert split_deposit_fee(1000, 0) == (1000, 0)
    assert split_deposit_fee(1, 9999) == (1, 0)

    claimable, locked = split_payout(7, 5000)
    assert (claimable, locked) == (4, 3)
    assert split_payout(100, 10_000) == (0, 100)

    with pytest.raises(RewardError):
        split_payout(100, 10_001)


def test_decay_rate_compounds_per_period_and_respects_floor() -> None:
    assert decay_rate(1000, 0, 1000, 100) == 1000
    assert decay_rate(1000, 1, 1000, 100) == 900
    assert decay_rate(1000, 2, 1000, 100) == 810
    assert decay_rate(1000, 1, 1000, 950) == 950
    assert decay_rate(1000, 500, 1000, 100) == 100


@pytest.mark.parametrize(
    "now, expected",
    [
        (0, 0),
        (9, 0),
        (10, 0),
        (60, 500),
        (109, 990),
        (110, 1000),
        (10_000, 1000),
    ],
)
def test_vested_amount_is_piecewise_linear(now: int, expected: int) -> None:
    assert vested_amount(1000, 0, now_block=now, start_block=10, end_block=110) == expected


def test_vested_amount_subtracts_released_and_never_goes_negative() -> None:
    assert vested_amount(1000, 400, now_block=60, start_block=10, end_block=110) == 100
    assert vested_amount(1000, 700, now_block=60, start_block=10, end_block=110) == 0
    assert vested_amount(1000, 1000, now_block=200, start_block=10, end_block=110) == 0

    with pytest.raises(RewardError):
        vested_amount(1, 0, now_block=0, start_block=5, end_block=5)


def test_vesting_window_boundaries_100_to_200() -> None:
    assert vested_amount(1000, 0, now_block=99, start_block=100, end_block=200) == 0
    assert vested_amount(1000, 0, now_block=150, start_block=100, end_block=200) == 500
    assert vested_amount(1000, 200, now_block=150, start_block=100, end_block=200) == 300
    assert vested_amount(1000, 200, now_block=200, start_block=100, end_block=200) == 800


@pytest.mark.parametrize("amount", [10_000, 1, 19, 123_457])
def test_five_percent_fee_parts_sum_to_the_deposit(amount: int) -> None:
    net, fee = split_deposit_fee(amount, 500)
    assert net + fee == amount
    assert fee == amount * 500 // 10_000


def test_five_percent_fee_on_ten_thousand() -> None:
    assert split_deposit_fee(10_000, 500) == (9_500, 500)
