# tests/test_vault_vesting.py
from __future__ import annotations

import pytest

from yieldfarm.runtime.apply.tokens import approve, balance_of, ensure_token, mint
from yieldfarm.runtime.apply.vault import can_unlock_amount, get_lock, init_vault, lock, unlock
from yieldfarm.runtime.domain_apply import ApplyError
from yieldfarm.runtime.state_invariants import check_invariants, ensure_state
from yieldfarm.testing.farmstate import make_state, set_height, submit


def _vault_state(*, tax_bps: int = 0):
    st = ensure_state({})
    ensure_token(st, "RWD", minters=["@minter"], transfer_tax_bps=tax_bps)
    mint(st, "RWD", "@minter", "alice", 10_000)
    init_vault(st, address="@vault", token="RWD", start_release_block=10, end_release_block=110)
    approve(st, "RWD", "alice", "@vault", 10_000)
    return st


def test_lock_credits_beneficiary_and_takes_custody() -> None:
    st = _vault_state()
    received = lock(st, caller="alice", beneficiary="bob", amount=1000)

    assert received == 1000
    assert get_lock(st, "bob") == {"total_locked": 1000, "total_released": 0}
    assert st["vault"]["total_locked"] == 1000
    assert balance_of(st, "RWD", "@vault") == 1000
    assert balance_of(st, "RWD", "alice") == 9000

    ev = st["events"][-1]
    assert ev["event"] == "Locked"
    assert ev["beneficiary"] == "bob"
    assert ev["requested_amount"] == 1000
    assert ev["received_amount"] == 1000


def test_lock_records_measured_delta_for_taxed_token() -> None:
    st = _vault_state(tax_bps=100)
    received = lock(st, caller="alice", beneficiary="bob", amount=1000)

    assert received == 990
    assert get_lock(st, "bob")["total_locked"] == 990
    assert balance_of(st, "RWD", "@vault") == 990
    assert st["events"][-1]["requested_amount"] == 1000
    assert st["events"][-1]["received_amount"] == 990
    assert check_invariants(st) == []


def test_lock_rejects_zero_amount_and_zero_beneficiary() -> None:
    st = _vault_state()
    with pytest.raises(ApplyError) as ei:
        lock(st, caller="alice", beneficiary="bob", amount=0)
    assert ei.value.code == "invalid_payload"

    with pytest.raises(ApplyError) as ei:
        lock(st, caller="alice", beneficiary="0x0", amount=10)
    assert ei.value.reason == "zero_beneficiary"


def test_unlock_follows_the_linear_schedule() -> None:
    st = _vault_state()
    lock(st, caller="alice", beneficiary="bob", amount=1000)

    set_height(st, 5)
    assert can_unlock_amount(st, "bob") == 0
    with pytest.raises(ApplyError) as ei:
        unlock(st, "bob")
    assert ei.value.code == "precondition_failed"
    assert ei.value.reason == "vesting_not_started"

    set_height(st, 60)
    assert can_unlock_amount(st, "bob") == 500
    assert unlock(st, "bob") == 500
    assert balance_of(st, "RWD", "bob") == 500
    assert st["vault"]["total_locked"] == 500

    # Same block again: nothing newly vested, but the lock is not exhausted.
    assert unlock(st, "bob") == 0

    set_height(st, 200)
    assert can_unlock_amount(st, "bob") == 500
    assert unlock(st, "bob") == 500
    assert get_lock(st, "bob") == {"total_locked": 1000, "total_released": 1000}
    assert st["vault"]["total_locked"] == 0

    with pytest.raises(ApplyError) as ei:
        unlock(st, "bob")
    assert ei.value.reason == "nothing_to_unlock"
    assert check_invariants(st) == []


def test_late_lock_vests_pro_rata_immediately() -> None:
    st = _vault_state()
    set_height(st, 60)
    lock(st, caller="alice", beneficiary="bob", amount=1000)
    assert can_unlock_amount(st, "bob") == 500


def test_unlock_for_unknown_account_has_nothing() -> None:
    st = _vault_state()
    set_height(st, 50)
    assert can_unlock_amount(st, "nobody") == 0
    with pytest.raises(ApplyError) as ei:
        unlock(st, "nobody")
    assert ei.value.reason == "nothing_to_unlock"


def test_vault_txs_through_dispatch() -> None:
    st = make_state()
    # Fund alice with reward tokens the only way they exist: via the farm's mint right.
    mint(st, "REWARD", "@farm", "alice", 2000)
    submit(st, "TOKEN_APPROVE", "alice", {"token": "REWARD", "spender": "@vault", "amount": 2000})
    out = submit(st, "VAULT_LOCK", "alice", {"beneficiary": "carol", "amount": 2000})
    assert out["received"] == 2000

    set_height(st, 25)
    out = submit(st, "VAULT_UNLOCK", "carol")
    assert out == {"applied": "VAULT_UNLOCK", "account": "carol", "amount": 500}
    assert st["events"][-1] == {"event": "Unlocked", "height": 25, "account": "carol", "amount": 500}
