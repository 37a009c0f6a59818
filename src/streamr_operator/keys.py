"""
Signing key for the operator agent.

The key lives in ``PRIVATE_KEY`` (process environment, or a ``.env`` file
that fills in whatever the environment leaves unset).  Only the derived
address is ever logged or printed.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from eth_account import Account
from eth_account.signers.local import LocalAccount

DEFAULT_ENV = Path(".env")


def load_private_key(env_path: Optional[Path] = None) -> str:
    """
    Read ``PRIVATE_KEY``, normalized to a 0x-prefixed hex string.

    Raises:
        ValueError: If no key is configured
    """
    source = env_path or DEFAULT_ENV
    if source.exists():
        load_dotenv(source)

    key = os.environ.get("PRIVATE_KEY", "").strip()
    if not key:
        raise ValueError(f"PRIVATE_KEY is not set (environment or {source})")
    return key if key.startswith("0x") else f"0x{key}"


def get_account(private_key: Optional[str] = None) -> LocalAccount:
    """Signer for ``private_key``, or for the configured key when omitted.

    Raises:
        ValueError: If the key is not a valid secp256k1 private key
    """
    return Account.from_key(private_key if private_key is not None else load_private_key())


def get_address(private_key: Optional[str] = None) -> str:
    return get_account(private_key).address
