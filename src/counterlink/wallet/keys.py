"""
Signing key of the local-key wallet.

The key lives in ~/.counterlink/.env as PRIVATE_KEY, beside the other
counterlink settings, and is read back through config.load_settings().
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import set_key
from eth_account import Account


COUNTERLINK_DIR = Path.home() / ".counterlink"
COUNTERLINK_ENV = COUNTERLINK_DIR / ".env"
PRIVATE_KEY_VAR = "PRIVATE_KEY"


def normalize_private_key(value: str) -> str:
    value = value.strip()
    return value if value.startswith("0x") else "0x" + value


def generate_eoa() -> tuple[str, str]:
    """New wallet key as ``(0x-hex private key, checksummed address)``."""
    account = Account.create()
    return "0x" + bytes(account.key).hex(), account.address


def save_private_key(private_key: str, env_path: Optional[Path] = None) -> Path:
    """
    Store ``private_key`` as PRIVATE_KEY, leaving other entries in place.

    The file is created owner-readable only (mode 0600 where supported).
    """
    env_path = env_path or COUNTERLINK_ENV
    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.touch(mode=0o600, exist_ok=True)
    set_key(str(env_path), PRIVATE_KEY_VAR, normalize_private_key(private_key), quote_mode="never")
    if os.name != "nt":
        env_path.chmod(0o600)
    return env_path


def get_address(private_key: str) -> str:
    """
    Raises:
        ValueError: If ``private_key`` is not a valid secp256k1 key
    """
    return Account.from_key(normalize_private_key(private_key)).address
