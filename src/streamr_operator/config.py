"""
Runtime settings, read from the environment.

A ``.env`` file in the working directory (or the one passed in) is loaded
first without overriding variables already set.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .chain.abi import DEFAULT_EXPLORER_URL
from .chain.rpc import DEFAULT_RPC_URL
from .chain.tx import DEFAULT_GAS_LIMIT, DEFAULT_MAX_PENDING_WATCHES, DEFAULT_POLL_INTERVAL
from .staking.operator import DEFAULT_CONFIRM_TIMEOUT, DEFAULT_FEE_PERCENT

logger = logging.getLogger(__name__)


def get_int_env(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, defaulting to %d", key, raw, default)
        return default


def get_float_env(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, defaulting to %s", key, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    contract_addr: str
    rpc_url: str = DEFAULT_RPC_URL
    owner_addr: str = ""
    abi_path: str = ""
    explorer_url: str = DEFAULT_EXPLORER_URL
    explorer_api_key: str = ""
    gas_limit: int = DEFAULT_GAS_LIMIT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT
    fee_percent: int = DEFAULT_FEE_PERCENT
    max_pending_watches: int = DEFAULT_MAX_PENDING_WATCHES

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            ValueError: If CONTRACT_ADDR is not set
        """
        env_path = env_path or Path(".env")
        if env_path.exists():
            load_dotenv(env_path)

        contract_addr = os.environ.get("CONTRACT_ADDR", "")
        if not contract_addr:
            raise ValueError("CONTRACT_ADDR must be set")

        return cls(
            contract_addr=contract_addr,
            rpc_url=os.environ.get("RPC_ADDR") or DEFAULT_RPC_URL,
            owner_addr=os.environ.get("OWNER_ADDR", ""),
            abi_path=os.environ.get("ABI_PATH", ""),
            explorer_url=os.environ.get("POLYGONSCAN_API_URL") or DEFAULT_EXPLORER_URL,
            explorer_api_key=os.environ.get("POLYGONSCAN_API_KEY", ""),
            gas_limit=get_int_env("GAS_LIMIT", DEFAULT_GAS_LIMIT),
            poll_interval=get_float_env("POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            confirm_timeout=get_float_env("CONFIRM_TIMEOUT", DEFAULT_CONFIRM_TIMEOUT),
            fee_percent=get_int_env("PROTOCOL_FEE_PERCENT", DEFAULT_FEE_PERCENT),
            max_pending_watches=get_int_env("MAX_PENDING_WATCHES", DEFAULT_MAX_PENDING_WATCHES),
        )
