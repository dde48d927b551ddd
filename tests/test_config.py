"""
Tests for environment-driven Settings.
"""

from decimal import Decimal

import pytest

from ocobot.config.config import Settings, env_bool

ENV_KEYS = [
    "BINANCE_API_KEY", "BINANCE_API_SECRET", "APIKEY", "APISECRET", "BINANCE_TESTNET",
    "OCO_FEE_DISCOUNT_ASSET", "OCO_NON_DISCOUNT_FEE_RATE", "OCO_HTTP_TIMEOUT", "OCO_LOG_LEVEL",
    "OCO_LOG_FILE", "OCO_TICK_LOG_COOLDOWN_SEC", "OCO_METRICS_PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestSettings:

    def test_defaults(self):
        cfg = Settings.load()
        assert cfg.api_key is None
        assert cfg.testnet is False
        assert cfg.fee_discount_asset == "BNB"
        assert cfg.non_discount_fee_rate == Decimal("0.001")
        assert cfg.http_timeout == 10.0
        assert cfg.log_level == "INFO"
        assert cfg.log_file == "ocobot.log"
        assert cfg.tick_log_cooldown_sec == 5.0
        assert cfg.metrics_port == 0

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("BINANCE_API_KEY", "key")
        monkeypatch.setenv("BINANCE_API_SECRET", "secret")
        monkeypatch.setenv("BINANCE_TESTNET", "yes")
        monkeypatch.setenv("OCO_FEE_DISCOUNT_ASSET", "fdusd")
        monkeypatch.setenv("OCO_NON_DISCOUNT_FEE_RATE", "0.00075")
        monkeypatch.setenv("OCO_METRICS_PORT", "9100")
        monkeypatch.setenv("OCO_LOG_FILE", "")
        cfg = Settings.load()
        assert cfg.api_key == "key"
        assert cfg.testnet is True
        assert cfg.fee_discount_asset == "FDUSD"
        assert cfg.non_discount_fee_rate == Decimal("0.00075")
        assert cfg.metrics_port == 9100
        assert cfg.log_file is None

    def test_legacy_credential_names(self, monkeypatch):
        monkeypatch.setenv("APIKEY", "old-key")
        monkeypatch.setenv("APISECRET", "old-secret")
        cfg = Settings.load()
        assert cfg.api_key == "old-key"
        assert cfg.api_secret == "old-secret"
        cfg.require_credentials()

    def test_missing_credentials(self):
        with pytest.raises(ValueError, match="Missing credentials"):
            Settings.load().require_credentials()

    def test_dump_masks_credentials(self, monkeypatch):
        monkeypatch.setenv("BINANCE_API_KEY", "key")
        monkeypatch.setenv("BINANCE_API_SECRET", "secret")
        dumped = Settings.load().dump()
        assert dumped["api_key"] == "***"
        assert dumped["api_secret"] == "***"
        assert "secret" not in str(dumped.values())

    @pytest.mark.parametrize("key, value", [
        ("OCO_NON_DISCOUNT_FEE_RATE", "1.5"),
        ("OCO_NON_DISCOUNT_FEE_RATE", "abc"),
        ("OCO_HTTP_TIMEOUT", "0"),
        ("OCO_METRICS_PORT", "-1"),
        ("OCO_TICK_LOG_COOLDOWN_SEC", "-2"),
    ])
    def test_invalid_values(self, monkeypatch, key, value):
        monkeypatch.setenv(key, value)
        with pytest.raises(ValueError):
            Settings.load()


def test_env_bool(monkeypatch):
    monkeypatch.setenv("FLAG", "TRUE")
    assert env_bool("FLAG", False) is True
    monkeypatch.setenv("FLAG", "0")
    assert env_bool("FLAG", True) is False
    monkeypatch.delenv("FLAG")
    assert env_bool("FLAG", True) is True
