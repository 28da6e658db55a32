# src/yieldfarm/runtime/genesis.py
from __future__ import annotations

from typing import Any, Dict

from yieldfarm.ledger.constants import MAX_UINT256
from yieldfarm.runtime.apply.accounts import bind_key
from yieldfarm.runtime.apply.farm import init_farm
from yieldfarm.runtime.apply.tokens import approve, ensure_token
from yieldfarm.runtime.apply.vault import init_vault
from yieldfarm.runtime.chain_config import FarmConfig, validate_chain_config
from yieldfarm.runtime.state_invariants import ensure_state

Json = Dict[str, Any]


def _credit(tok: Json, account: str, amount: int) -> None:
    if amount <= 0:
        return
    balances = tok["balances"]
    balances[account] = int(balances.get(account, 0)) + int(amount)
    tok["total_supply"] = int(tok.get("total_supply", 0)) + int(amount)


def build_genesis_state(cfg: FarmConfig) -> Json:
    """Build the height-0 state for a fresh chain.

    Wires the reward token (minted only by the farm), the farm and vault
    aggregates, the farm's standing approval of the vault, and the
    principals' signing keys.
    """
    validate_chain_config(cfg)

    state: Json = {
        "chain_id": cfg.chain_id,
        "height": 0,
        "params": {"require_signatures": bool(cfg.require_signatures)},
        "accounts": {},
        "tokens": {},
        "events": [],
    }
    ensure_state(state)

    reward_cfg = cfg.tokens.get(cfg.reward_token) or {}
    ensure_token(
        state,
        cfg.reward_token,
        minters=[cfg.farm_address],
        transfer_tax_bps=int(reward_cfg.get("transfer_tax_bps", 0) or 0),
    )
    for token_id, tok_cfg in sorted(cfg.tokens.items()):
        if token_id == cfg.reward_token:
            continue
        ensure_token(state, token_id, transfer_tax_bps=int(tok_cfg.get("transfer_tax_bps", 0) or 0))

    for token_id, tok_cfg in sorted(cfg.tokens.items()):
        tok = state["tokens"][token_id]
        for account, amount in sorted((tok_cfg.get("balances") or {}).items()):
            _credit(tok, str(account), int(amount))

    init_farm(
        state,
        address=cfg.farm_address,
        reward_token=cfg.reward_token,
        vault_address=cfg.vault_address,
        owner=cfg.owner,
        dev_address=cfg.dev_address,
        fee_address=cfg.fee_address,
        start_block=cfg.start_block,
        rate_per_block=cfg.reward_per_block,
        reduction_period_blocks=cfg.reduction_period_blocks,
        reduction_rate_bps=cfg.reduction_rate_bps,
        minimum_rate_per_block=cfg.minimum_reward_per_block,
    )
    init_vault(
        state,
        address=cfg.vault_address,
        token=cfg.reward_token,
        start_release_block=cfg.vesting_start_block,
        end_release_block=cfg.vesting_end_block,
    )

    # The vault pulls locked rewards straight from farm custody.
    approve(state, cfg.reward_token, cfg.farm_address, cfg.vault_address, MAX_UINT256)

    # Principals sign from block 0; ACCOUNT_REGISTER is closed to them.
    for account, pubkey in sorted(cfg.principal_keys.items()):
        bind_key(state, account, pubkey)
    return state


__all__ = ["build_genesis_state"]
