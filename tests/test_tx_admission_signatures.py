# tests/test_tx_admission_signatures.py
from __future__ import annotations

from pathlib import Path

import pytest

from yieldfarm.crypto.sig import canonical_tx_message, sign_ed25519, verify_ed25519_signature
from yieldfarm.runtime.domain_apply import ApplyError
from yieldfarm.runtime.executor import FarmExecutor
from yieldfarm.runtime.tx_admission import admit_tx
from yieldfarm.testing.farmstate import DEV, FARM, FEES, OWNER, VAULT, make_config, make_state, submit
from yieldfarm.testing.sigtools import deterministic_ed25519_keypair, pubkey_for, sign_tx_dict

CHAIN_ID = "yieldfarm-test"


def _signed(tx_type: str, signer: str, nonce: int, payload=None, *, as_label: str | None = None):
    tx = {"tx_type": tx_type, "signer": as_label or signer, "nonce": nonce, "payload": payload or {}}
    out = sign_tx_dict(tx, chain_id=CHAIN_ID)
    out["signer"] = signer
    return out


def _principal_keys():
    return {who: pubkey_for(who) for who in (OWNER, DEV, FEES)}


def _mk(tmp_path: Path, **overrides) -> FarmExecutor:
    cfg = make_config(db_path=str(tmp_path / "farm.db"), require_signatures=True, **overrides)
    return FarmExecutor.from_config(cfg)


def test_sign_and_verify_roundtrip_with_hex_seed() -> None:
    seed_hex = "11" * 32
    msg = canonical_tx_message(chain_id=CHAIN_ID, tx_type="VAULT_UNLOCK", signer="alice", nonce=1, payload={})
    sig = sign_ed25519(message=msg, privkey=seed_hex)

    from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
    from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

    pk = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(seed_hex)).public_key()
    pk_hex = pk.public_bytes(Encoding.Raw, PublicFormat.Raw).hex()

    assert verify_ed25519_signature(message=msg, sig=sig, pubkey=pk_hex) is True
    assert verify_ed25519_signature(message=msg + b"x", sig=sig, pubkey=pk_hex) is False
    assert verify_ed25519_signature(message=msg, sig="zz-not-a-sig", pubkey=pk_hex) is False


def test_signed_flow_registers_then_transacts(tmp_path: Path) -> None:
    ex = _mk(tmp_path)
    assert ex.require_signatures is True

    reg = _signed("ACCOUNT_REGISTER", "alice", 1, {"pubkey": pubkey_for("alice")})
    res = ex.submit_tx(reg)
    assert res["ok"] is True, res
    assert ex.view().get_nonce("alice") == 1

    approve = _signed("TOKEN_APPROVE", "alice", 2, {"token": "LP", "spender": "@farm", "amount": 100})
    assert ex.submit_tx(approve)["ok"] is True
    assert ex.view().get_nonce("alice") == 2

    # Replay of an already-used nonce.
    res = ex.submit_tx(approve)
    assert res["ok"] is False
    assert res["error"] == "bad_nonce"
    assert res["details"] == {"expected": 3, "got": 2}


def test_wrong_key_and_missing_signature_are_rejected(tmp_path: Path) -> None:
    ex = _mk(tmp_path)
    assert ex.submit_tx(_signed("ACCOUNT_REGISTER", "alice", 1, {"pubkey": pubkey_for("alice")}))["ok"]

    forged = _signed("TOKEN_APPROVE", "alice", 2, {"token": "LP", "spender": "@farm", "amount": 1}, as_label="mallory")
    res = ex.submit_tx(forged)
    assert res["ok"] is False
    assert res["error"] == "bad_signature"
    assert res["reason"] == "invalid_signature"

    unsigned = {"tx_type": "TOKEN_APPROVE", "signer": "alice", "nonce": 2, "payload": {"token": "LP", "spender": "@farm", "amount": 1}}
    res = ex.submit_tx(unsigned)
    assert res["error"] == "bad_signature"
    assert res["reason"] == "missing_signature"

    # Rejections never burn the nonce.
    assert ex.view().get_nonce("alice") == 1


def test_unregistered_signer_has_no_keys(tmp_path: Path) -> None:
    ex = _mk(tmp_path)
    res = ex.submit_tx(_signed("VAULT_UNLOCK", "bob", 1))
    assert res["ok"] is False
    assert res["reason"] == "no_active_keys"


def test_signature_is_bound_to_chain_id() -> None:
    st = make_state(require_signatures=True)
    tx = {"tx_type": "ACCOUNT_REGISTER", "signer": "alice", "nonce": 1, "payload": {"pubkey": pubkey_for("alice")}}
    other_chain = sign_tx_dict(tx, chain_id="another-chain")

    ok, rej = admit_tx(other_chain, st, chain_id=CHAIN_ID, require_signatures=True)
    assert ok is False
    assert rej.code == "bad_signature"

    ok, rej = admit_tx(sign_tx_dict(tx, chain_id=CHAIN_ID), st, chain_id=CHAIN_ID, require_signatures=True)
    assert ok is True
    assert rej is None


def test_envelope_shape_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    st = make_state()
    ok, rej = admit_tx(["not", "a", "dict"], st, chain_id=CHAIN_ID, require_signatures=False)
    assert (ok, rej.reason) == (False, "envelope_must_be_object")

    ok, rej = admit_tx({"tx_type": "VAULT_UNLOCK", "signer": "a", "nonce": -1}, st, chain_id=CHAIN_ID, require_signatures=False)
    assert (ok, rej.code) == (False, "bad_nonce")

    ok, rej = admit_tx({"tx_type": "VAULT_UNLOCK", "signer": "a", "payload": "x"}, st, chain_id=CHAIN_ID, require_signatures=False)
    assert (ok, rej.reason) == (False, "payload_must_be_object")

    monkeypatch.setenv("YIELDFARM_MAX_TX_ENVELOPE_BYTES", "64")
    big = {"tx_type": "ACCOUNT_REGISTER", "signer": "alice", "payload": {"pubkey": "ab" * 64}}
    ok, rej = admit_tx(big, st, chain_id=CHAIN_ID, require_signatures=False)
    assert (ok, rej.code) == (False, "tx_too_large")


def test_deterministic_keypair_is_stable() -> None:
    pk1, _ = deterministic_ed25519_keypair(label="alice")
    pk2, _ = deterministic_ed25519_keypair(label="alice")
    pk3, _ = deterministic_ed25519_keypair(label="bob")
    assert pk1 == pk2 == pubkey_for("alice")
    assert pk1 != pk3
    assert len(bytes.fromhex(pk1)) == 32


def _signed_with_key(label: str, tx_type: str, signer: str, nonce: int, payload=None):
    """A well-formed signature over the real signer id, made with `label`'s key."""
    payload = payload or {}
    _, sk = deterministic_ed25519_keypair(label=label)
    msg = canonical_tx_message(chain_id=CHAIN_ID, tx_type=tx_type, signer=signer, nonce=nonce, payload=payload)
    return {"tx_type": tx_type, "signer": signer, "nonce": nonce, "payload": payload, "sig": sk.sign(msg).hex()}


def test_genesis_binds_principal_keys(tmp_path: Path) -> None:
    ex = _mk(tmp_path, principal_keys=_principal_keys())
    st = ex.read_state()
    for who in (OWNER, DEV, FEES):
        assert st["accounts"][who]["keys"] == [{"pubkey": pubkey_for(who), "active": True}]
    assert FARM not in st["accounts"]

    res = ex.submit_tx(_signed("FARM_POOL_ADD", OWNER, 1, {"weight": 1, "staked_token": "LP"}))
    assert res["ok"] is True, res


def test_custody_accounts_cannot_be_registered_or_sign(tmp_path: Path) -> None:
    ex = _mk(tmp_path, principal_keys=_principal_keys())
    assert ex.submit_tx(_signed("FARM_POOL_ADD", OWNER, 1, {"weight": 1, "staked_token": "LP"}))["ok"]
    assert ex.submit_tx(_signed("ACCOUNT_REGISTER", "alice", 1, {"pubkey": pubkey_for("alice")}))["ok"]
    assert ex.submit_tx(_signed("TOKEN_APPROVE", "alice", 2, {"token": "LP", "spender": FARM, "amount": 500}))["ok"]
    assert ex.submit_tx(_signed("FARM_DEPOSIT", "alice", 3, {"pid": 0, "amount": 500}))["ok"]

    for custody in (FARM, VAULT):
        res = ex.submit_tx(_signed_with_key("mallory", "ACCOUNT_REGISTER", custody, 1, {"pubkey": pubkey_for("mallory")}))
        assert res["ok"] is False
        assert (res["error"], res["reason"]) == ("forbidden", "custody_account_cannot_sign")

    drain = _signed_with_key("mallory", "TOKEN_TRANSFER", FARM, 1, {"token": "LP", "to": "mallory", "amount": 500})
    res = ex.submit_tx(drain)
    assert (res["ok"], res["error"]) == (False, "forbidden")

    view = ex.view()
    assert view.balance_of("LP", FARM) == 500
    assert view.balance_of("LP", "mallory") == 0
    assert FARM not in ex.read_state()["accounts"]

    res = ex.submit_tx(_signed("FARM_WITHDRAW", "alice", 4, {"pid": 0, "amount": 500}))
    assert res["ok"] is True, res
    assert ex.view().balance_of("LP", "alice") == 1000


def test_seeded_principals_cannot_be_squatted(tmp_path: Path) -> None:
    ex = _mk(tmp_path, principal_keys=_principal_keys())
    res = ex.submit_tx(_signed_with_key("mallory", "ACCOUNT_REGISTER", OWNER, 1, {"pubkey": pubkey_for("mallory")}))
    assert res["ok"] is False
    assert (res["error"], res["reason"]) == ("bad_signature", "invalid_signature")


def test_unseeded_principals_are_reserved(tmp_path: Path) -> None:
    ex = _mk(tmp_path)
    for who in (OWNER, DEV, FEES):
        res = ex.submit_tx(_signed_with_key("mallory", "ACCOUNT_REGISTER", who, 1, {"pubkey": pubkey_for("mallory")}))
        assert res["ok"] is False
        assert (res["error"], res["reason"]) == ("forbidden", "reserved_account")
    assert ex.read_state()["accounts"] == {}


def test_custody_signer_is_refused_by_dispatch_too() -> None:
    st = make_state()
    with pytest.raises(ApplyError) as ei:
        submit(st, "TOKEN_TRANSFER", FARM, {"token": "LP", "to": "mallory", "amount": 1})
    assert (ei.value.code, ei.value.reason) == ("forbidden", "custody_account_cannot_sign")

    ok, rej = admit_tx({"tx_type": "VAULT_UNLOCK", "signer": VAULT}, st, chain_id=CHAIN_ID, require_signatures=False)
    assert (ok, rej.code, rej.reason) == (False, "forbidden", "custody_account_cannot_sign")


def test_capabilities_only_move_to_registered_non_custody_accounts() -> None:
    st = make_state(require_signatures=True, principal_keys=_principal_keys())

    with pytest.raises(ApplyError) as ei:
        submit(st, "FARM_OWNERSHIP_TRANSFER", OWNER, {"new_owner": "bob"})
    assert (ei.value.code, ei.value.reason) == ("precondition_failed", "account_not_registered")

    with pytest.raises(ApplyError) as ei:
        submit(st, "FARM_DEV_ADDRESS_SET", DEV, {"dev_address": FARM})
    assert (ei.value.code, ei.value.reason) == ("forbidden", "custody_dev_address")

    submit(st, "ACCOUNT_REGISTER", "bob", {"pubkey": pubkey_for("bob")})
    submit(st, "FARM_OWNERSHIP_TRANSFER", OWNER, {"new_owner": "bob"})
    assert st["farm"]["owner"] == "bob"


def test_register_rejects_malformed_pubkey() -> None:
    st = make_state()
    for bad in ("zz" * 32, "ab" * 31):
        with pytest.raises(ApplyError) as ei:
            submit(st, "ACCOUNT_REGISTER", "alice", {"pubkey": bad})
        assert (ei.value.code, ei.value.reason) == ("invalid_payload", "bad_pubkey")
