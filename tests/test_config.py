"""Tests for environment settings and key loading."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from streamr_operator.chain.abi import DEFAULT_EXPLORER_URL
from streamr_operator.chain.rpc import DEFAULT_RPC_URL
from streamr_operator.config import Settings, get_float_env, get_int_env
from streamr_operator.keys import get_address, load_private_key

from conftest import new_key

SETTINGS_VARS = [
    "CONTRACT_ADDR",
    "RPC_ADDR",
    "OWNER_ADDR",
    "ABI_PATH",
    "POLYGONSCAN_API_URL",
    "POLYGONSCAN_API_KEY",
    "GAS_LIMIT",
    "POLL_INTERVAL",
    "CONFIRM_TIMEOUT",
    "PROTOCOL_FEE_PERCENT",
    "MAX_PENDING_WATCHES",
    "PRIVATE_KEY",
]


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Empty settings environment; anything a .env file sets is undone afterwards."""
    monkeypatch.chdir(tmp_path)
    for var in SETTINGS_VARS:
        monkeypatch.setenv(var, "placeholder")
        monkeypatch.delenv(var)
    return tmp_path


class TestSettings:
    def test_defaults(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CONTRACT_ADDR", "0xabc")
        settings = Settings.from_env()
        assert settings.contract_addr == "0xabc"
        assert settings.rpc_url == DEFAULT_RPC_URL
        assert settings.explorer_url == DEFAULT_EXPLORER_URL
        assert settings.gas_limit == 3_000_000
        assert settings.poll_interval == 5.0
        assert settings.confirm_timeout == 300.0
        assert settings.fee_percent == 5
        assert settings.max_pending_watches == 1000

    def test_overrides(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CONTRACT_ADDR", "0xabc")
        monkeypatch.setenv("RPC_ADDR", "http://localhost:8545")
        monkeypatch.setenv("GAS_LIMIT", "500000")
        monkeypatch.setenv("POLL_INTERVAL", "0.5")
        monkeypatch.setenv("PROTOCOL_FEE_PERCENT", "10")
        settings = Settings.from_env()
        assert settings.rpc_url == "http://localhost:8545"
        assert settings.gas_limit == 500_000
        assert settings.poll_interval == 0.5
        assert settings.fee_percent == 10

    def test_env_file(self, clean_env: Path) -> None:
        env_file = clean_env / "operator.env"
        env_file.write_text("CONTRACT_ADDR=0xdef\nOWNER_ADDR=0xowner\nABI_PATH=abi.json\n", encoding="utf-8")
        settings = Settings.from_env(env_file)
        assert settings.contract_addr == "0xdef"
        assert settings.owner_addr == "0xowner"
        assert settings.abi_path == "abi.json"

    def test_environment_wins_over_env_file(
        self, clean_env: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (clean_env / ".env").write_text("CONTRACT_ADDR=0xfile\n", encoding="utf-8")
        monkeypatch.setenv("CONTRACT_ADDR", "0xenv")
        assert Settings.from_env().contract_addr == "0xenv"

    def test_contract_required(self, clean_env: Path) -> None:
        with pytest.raises(ValueError, match="CONTRACT_ADDR"):
            Settings.from_env()


class TestNumericEnv:
    def test_invalid_int_falls_back(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("GAS_LIMIT", "lots")
        with caplog.at_level(logging.WARNING):
            assert get_int_env("GAS_LIMIT", 42) == 42
        assert "GAS_LIMIT" in caplog.text

    def test_invalid_float_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("POLL_INTERVAL", "soon")
        assert get_float_env("POLL_INTERVAL", 1.5) == 1.5

    def test_empty_is_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GAS_LIMIT", "")
        assert get_int_env("GAS_LIMIT", 7) == 7


class TestKeys:
    def test_address_from_key(self) -> None:
        private_key, address = new_key()
        assert get_address(private_key) == address
        assert get_address(private_key[2:]) == address

    def test_load_from_env_file(self, clean_env: Path) -> None:
        private_key, _ = new_key()
        env_file = clean_env / ".env"
        env_file.write_text(f"PRIVATE_KEY={private_key[2:]}\n", encoding="utf-8")
        assert load_private_key(env_file) == private_key

    def test_missing_key(self, clean_env: Path) -> None:
        with pytest.raises(ValueError, match="PRIVATE_KEY"):
            load_private_key()

    def test_invalid_key(self) -> None:
        with pytest.raises(ValueError):
            get_address("0x1234")
