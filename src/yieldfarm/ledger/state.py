from __future__ import annotations

from dataclasses import dataclass, field
import copy
from typing import Any, Dict, List

from yieldfarm.runtime.apply import farm as farm_apply
from yieldfarm.runtime.apply import vault as vault_apply
from yieldfarm.runtime.apply.tokens import balance_of


Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class FarmView:
    """
    Immutable read-only view of farm state used by the API and tooling.

    Every projection runs against a private copy, so nothing here can mutate
    the executor's live state.
    """

    height: int = 0
    chain_id: str = ""
    accounts: Dict[str, Any] = field(default_factory=dict)
    tokens: Dict[str, Any] = field(default_factory=dict)
    farm: Dict[str, Any] = field(default_factory=dict)
    vault: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "FarmView":
        return cls(
            height=int(state.get("height", 0) or 0),
            chain_id=str(state.get("chain_id") or ""),
            accounts=copy.deepcopy(state.get("accounts", {})) if isinstance(state.get("accounts"), dict) else {},
            tokens=copy.deepcopy(state.get("tokens", {})) if isinstance(state.get("tokens"), dict) else {},
            farm=copy.deepcopy(state.get("farm", {})) if isinstance(state.get("farm"), dict) else {},
            vault=copy.deepcopy(state.get("vault", {})) if isinstance(state.get("vault"), dict) else {},
        )

    def to_state(self) -> Dict[str, Any]:
        return {
            "height": int(self.height),
            "chain_id": self.chain_id,
            "accounts": copy.deepcopy(self.accounts),
            "tokens": copy.deepcopy(self.tokens),
            "farm": copy.deepcopy(self.farm),
            "vault": copy.deepcopy(self.vault),
        }

    def get_nonce(self, account_id: str) -> int:
        acct = self.accounts.get(account_id)
        if not isinstance(acct, dict):
            return 0
        try:
            return int(acct.get("nonce", 0))
        except Exception:
            return 0

    # -- farm ---------------------------------------------------------------

    def pool_length(self) -> int:
        pools = self.farm.get("pools")
        return len(pools) if isinstance(pools, list) else 0

    def pools(self) -> List[Json]:
        st = self.to_state()
        return [self._pool_summary(st, pid) for pid in range(self.pool_length())]

    def pool(self, pid: int) -> Json:
        return self._pool_summary(self.to_state(), pid)

    def _pool_summary(self, st: Json, pid: int) -> Json:
        out = farm_apply.get_pool(st, pid)
        out["staked_balance"] = farm_apply.staked_balance(st, pid)
        out["projected_acc_reward_per_share"] = farm_apply.projected_acc_reward_per_share(st, pid)
        return out

    def user_stake(self, pid: int, account: str) -> Json:
        st = self.to_state()
        out = farm_apply.get_user_stake(st, pid, account)
        out["pending_reward"] = farm_apply.pending_reward(st, pid, account)
        return out

    def pending_reward(self, pid: int, account: str) -> int:
        return farm_apply.pending_reward(self.to_state(), pid, account)

    def emission(self) -> Json:
        e = self.farm.get("emission")
        return dict(e) if isinstance(e, dict) else {}

    # -- vault --------------------------------------------------------------

    def lock_of(self, account: str) -> Json:
        st = self.to_state()
        out = vault_apply.get_lock(st, account)
        out["unlockable"] = vault_apply.can_unlock_amount(st, account)
        return out

    def can_unlock_amount(self, account: str) -> int:
        return vault_apply.can_unlock_amount(self.to_state(), account)

    # -- tokens -------------------------------------------------------------

    def balance_of(self, token_id: str, account: str) -> int:
        return balance_of(self.to_state(), token_id, account)
