"""
Runtime settings.

Values come from the process environment after ~/.counterlink/.env has been
loaded with python-dotenv. Variables:

    COUNTER_CONTRACT_ADDRESS   counter contract address
    POLYGON_AMOY_RPC_URL       primary RPC URL override
    COUNTER_ABI_PATH           compiled artifact holding the contract ABI
    COUNTERLINK_POLL_INTERVAL  reconciliation poll period in seconds
    PRIVATE_KEY                signing key of the local-key wallet

Variables already set in the process environment take precedence over the
file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from .chain.abi import COUNTER_ABI, load_abi
from .chain.config import POLYGON_AMOY, ChainConfig
from .wallet.connection import DEFAULT_POLL_INTERVAL
from .wallet.keys import COUNTERLINK_ENV, PRIVATE_KEY_VAR, normalize_private_key


@dataclass(frozen=True)
class Settings:
    chain: ChainConfig
    contract_address: Optional[str]
    abi_path: Optional[Path] = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    private_key: Optional[str] = field(default=None, repr=False)

    def load_contract_abi(self) -> list[dict[str, Any]]:
        if self.abi_path is None:
            return COUNTER_ABI
        return load_abi(self.abi_path)


def load_settings(
    env_path: Optional[Path] = None,
    chain: ChainConfig = POLYGON_AMOY,
) -> Settings:
    """
    Build Settings from the environment.

    Raises:
        ValueError: If COUNTERLINK_POLL_INTERVAL is not a positive number
    """
    env_path = env_path or COUNTERLINK_ENV
    if env_path.exists():
        load_dotenv(env_path, override=False)

    rpc_url = os.environ.get("POLYGON_AMOY_RPC_URL")
    if rpc_url:
        chain = chain.with_rpc_url(rpc_url)

    abi_path = os.environ.get("COUNTER_ABI_PATH")
    private_key = os.environ.get(PRIVATE_KEY_VAR, "").strip()

    raw_interval = os.environ.get("COUNTERLINK_POLL_INTERVAL")
    poll_interval = DEFAULT_POLL_INTERVAL
    if raw_interval:
        try:
            poll_interval = float(raw_interval)
        except ValueError as exc:
            raise ValueError(f"Invalid COUNTERLINK_POLL_INTERVAL: {raw_interval!r}") from exc
        if poll_interval <= 0:
            raise ValueError(f"COUNTERLINK_POLL_INTERVAL must be positive: {raw_interval!r}")

    return Settings(
        chain=chain,
        contract_address=os.environ.get("COUNTER_CONTRACT_ADDRESS") or None,
        abi_path=Path(abi_path).expanduser() if abi_path else None,
        poll_interval=poll_interval,
        private_key=normalize_private_key(private_key) if private_key else None,
    )
