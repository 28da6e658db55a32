from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "yieldfarm" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


@pytest.fixture(autouse=True)
def _isolate_yieldfarm_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Tests build their own config; never pick up an operator's env.
    for name in (
        "YIELDFARM_CHAIN_CONFIG_PATH",
        "YIELDFARM_CHAIN_ID",
        "YIELDFARM_MODE",
        "YIELDFARM_DB_PATH",
        "YIELDFARM_LOG_LEVEL",
        "YIELDFARM_API_HOST",
        "YIELDFARM_API_PORT",
        "YIELDFARM_DOTENV_PATH",
        "YIELDFARM_MAX_TX_ENVELOPE_BYTES",
    ):
        monkeypatch.delenv(name, raising=False)
