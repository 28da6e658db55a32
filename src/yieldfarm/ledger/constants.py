# src/yieldfarm/ledger/constants.py
from __future__ import annotations

"""Farm monetary constants and protocol defaults.

All amounts are integer base units. All ratios are basis points.
"""

# Reward token precision (1 token = 1e18 units)
COIN_DECIMALS: int = 18
COIN: int = 10**COIN_DECIMALS

# Fixed-point scale for acc_reward_per_share
SCALE: int = 10**12

# Basis points: 10_000 == 100%
BPS_DENOMINATOR: int = 10_000
MAX_BPS: int = 10_000

# Dev recipient receives reward // DEV_REWARD_DIVISOR on top of each accrual
DEV_REWARD_DIVISOR: int = 10

# ERC-20 style "infinite" allowance; never decremented
MAX_UINT256: int = 2**256 - 1

# Zero address; never a valid beneficiary / recipient
ZERO_ACCOUNT: str = "0x0"

# Canonical custody accounts
FARM_ACCOUNT_ID: str = "@farm"
VAULT_ACCOUNT_ID: str = "@vault"

# Reward token id
REWARD_TOKEN_ID: str = "REWARD"

# Emission defaults (~3s blocks: 28_800 blocks/day)
DEFAULT_REWARD_PER_BLOCK: int = 10 * COIN
DEFAULT_REDUCTION_PERIOD_BLOCKS: int = 28_800
DEFAULT_REDUCTION_RATE_BPS: int = 300
DEFAULT_MINIMUM_REWARD_PER_BLOCK: int = COIN // 10
