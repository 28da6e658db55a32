# tests/test_farm_admin.py
from __future__ import annotations

import pytest

from yieldfarm.ledger.constants import SCALE
from yieldfarm.runtime.domain_apply import ApplyError
from yieldfarm.testing.farmstate import (
    DEV,
    FEES,
    OWNER,
    add_pool,
    approve_farm,
    make_state,
    set_height,
    stake,
    submit,
)


def test_pool_add_requires_owner() -> None:
    st = make_state()
    with pytest.raises(ApplyError) as ei:
        submit(st, "FARM_POOL_ADD", "alice", {"weight": 1, "staked_token": "LP"})
    assert ei.value.code == "forbidden"
    assert ei.value.reason == "not_owner"
    assert st["farm"]["pools"] == []


def test_pool_add_validates_token_and_bps() -> None:
    st = make_state()
    with pytest.raises(ApplyError) as ei:
        add_pool(st, "NOPE", weight=1)
    assert (ei.value.code, ei.value.reason) == ("not_found", "unknown_token")

    # Reward custody also holds unpaid rewards; staking it would blur the two.
    with pytest.raises(ApplyError) as ei:
        add_pool(st, "REWARD", weight=1)
    assert (ei.value.code, ei.value.reason) == ("invalid_payload", "staked_token_is_reward_token")

    with pytest.raises(ApplyError) as ei:
        add_pool(st, "LP", weight=1, deposit_fee_bps=10_001)
    assert (ei.value.code, ei.value.reason) == ("invalid_payload", "deposit_fee_bps_above_max")

    with pytest.raises(ApplyError) as ei:
        add_pool(st, "LP", weight=-1)
    assert ei.value.reason == "bad_weight"

    out = add_pool(st, "LP", weight=5, deposit_fee_bps=10_000, lock_fraction_bps=10_000)
    assert out == {"applied": "FARM_POOL_ADD", "pid": 0, "total_weight": 5}
    ev = st["events"][-1]
    assert (ev["event"], ev["pool_id"], ev["staked_token"], ev["weight"]) == ("PoolAdded", 0, "LP", 5)


def test_pool_add_before_start_block_starts_accrual_at_start() -> None:
    st = make_state(start_block=50)
    add_pool(st, "LP", weight=1)
    assert st["farm"]["pools"][0]["last_accrual_block"] == 50


def test_pool_set_updates_total_weight_and_keeps_omitted_fields() -> None:
    st = make_state()
    add_pool(st, "LP", weight=2, deposit_fee_bps=150, lock_fraction_bps=4000)
    add_pool(st, "LP2", weight=3)

    out = submit(st, "FARM_POOL_SET", OWNER, {"pid": 0, "weight": 7})
    assert out["total_weight"] == 10
    pool = st["farm"]["pools"][0]
    assert (pool["weight"], pool["deposit_fee_bps"], pool["lock_fraction_bps"]) == (7, 150, 4000)

    submit(st, "FARM_POOL_SET", OWNER, {"pid": 0, "weight": 0, "deposit_fee_bps": 0})
    assert st["farm"]["total_weight"] == 3
    assert st["farm"]["pools"][0]["deposit_fee_bps"] == 0
    assert st["events"][-1]["event"] == "PoolSet"

    with pytest.raises(ApplyError) as ei:
        submit(st, "FARM_POOL_SET", OWNER, {"pid": 9, "weight": 1})
    assert ei.value.code == "not_found"


def test_pool_set_with_sync_first_settles_before_reweighting() -> None:
    st = make_state()
    add_pool(st, "LP", weight=1)
    add_pool(st, "LP2", weight=1)
    approve_farm(st, "alice")
    stake(st, "alice", 0, 100)
    set_height(st, 10)

    submit(st, "FARM_POOL_SET", OWNER, {"pid": 1, "weight": 3, "sync_first": True})
    # Blocks 0..10 at 1:1 weights: half of 10 * 1000 to pool 0.
    assert st["farm"]["pools"][0]["acc_reward_per_share"] == 5_000 * SCALE // 100


def test_dev_and_fee_addresses_are_self_administered() -> None:
    st = make_state()

    with pytest.raises(ApplyError) as ei:
        submit(st, "FARM_DEV_ADDRESS_SET", OWNER, {"dev_address": "@dev2"})
    assert ei.value.reason == "not_dev"

    submit(st, "FARM_DEV_ADDRESS_SET", DEV, {"dev_address": "@dev2"})
    assert st["farm"]["dev_address"] == "@dev2"
    with pytest.raises(ApplyError):
        submit(st, "FARM_DEV_ADDRESS_SET", DEV, {"dev_address": "@dev3"})

    with pytest.raises(ApplyError) as ei:
        submit(st, "FARM_FEE_ADDRESS_SET", "@dev2", {"fee_address": "@fees2"})
    assert ei.value.reason == "not_fee_admin"

    submit(st, "FARM_FEE_ADDRESS_SET", FEES, {"fee_address": "@fees2"})
    assert st["farm"]["fee_address"] == "@fees2"
    assert st["events"][-1] == {
        "event": "FeeAddressSet",
        "height": 0,
        "previous": FEES,
        "fee_address": "@fees2",
    }

    with pytest.raises(ApplyError) as ei:
        submit(st, "FARM_DEV_ADDRESS_SET", "@dev2", {"dev_address": "0x0"})
    assert (ei.value.code, ei.value.reason) == ("invalid_payload", "zero_dev_address")


def test_ownership_transfer_moves_the_owner_capability() -> None:
    st = make_state()
    submit(st, "FARM_OWNERSHIP_TRANSFER", OWNER, {"new_owner": "@owner2"})
    assert st["farm"]["owner"] == "@owner2"

    with pytest.raises(ApplyError) as ei:
        add_pool(st, "LP", weight=1)
    assert ei.value.reason == "not_owner"

    submit(st, "FARM_POOL_ADD", "@owner2", {"weight": 1, "staked_token": "LP"})
    assert len(st["farm"]["pools"]) == 1

    with pytest.raises(ApplyError) as ei:
        submit(st, "FARM_OWNERSHIP_TRANSFER", "@owner2", {"new_owner": "0x0"})
    assert ei.value.reason == "zero_new_owner"


def test_emission_update_is_a_noop_inside_the_current_period() -> None:
    st = make_state()
    set_height(st, 50)
    out = submit(st, "FARM_EMISSION_RATE_UPDATE", "anyone")
    assert out["changed"] is False
    assert st["farm"]["emission"]["rate_per_block"] == 1000
    assert st["events"] == []


def test_emission_update_compounds_elapsed_periods_after_settling() -> None:
    st = make_state()
    add_pool(st, "LP", weight=1)
    approve_farm(st, "alice")
    stake(st, "alice", 0, 100)

    set_height(st, 250)
    out = submit(st, "FARM_EMISSION_RATE_UPDATE", "anyone")
    assert out["changed"] is True
    assert (out["previous"], out["rate_per_block"], out["period_index"]) == (1000, 810, 2)

    # The 250 blocks before the update were paid at the old rate.
    pool = st["farm"]["pools"][0]
    assert pool["acc_reward_per_share"] == 250_000 * SCALE // 100
    assert pool["last_accrual_block"] == 250

    ev = st["events"][-1]
    assert (ev["event"], ev["previous"], ev["rate_per_block"]) == ("EmissionRateUpdated", 1000, 810)

    # Same period again: nothing to do.
    assert submit(st, "FARM_EMISSION_RATE_UPDATE", "anyone")["changed"] is False


def test_emission_update_stops_at_the_floor() -> None:
    st = make_state(minimum_reward_per_block=950)
    set_height(st, 100)
    assert submit(st, "FARM_EMISSION_RATE_UPDATE", "anyone")["rate_per_block"] == 950

    set_height(st, 200)
    with pytest.raises(ApplyError) as ei:
        submit(st, "FARM_EMISSION_RATE_UPDATE", "anyone")
    assert (ei.value.code, ei.value.reason) == ("precondition_failed", "rate_at_floor")


def test_emission_update_before_start_block_is_rejected() -> None:
    st = make_state(start_block=10)
    set_height(st, 5)
    with pytest.raises(ApplyError) as ei:
        submit(st, "FARM_EMISSION_RATE_UPDATE", "anyone")
    assert ei.value.reason == "before_start_block"
