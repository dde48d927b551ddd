"""
Environment-driven configuration with validation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def _env_first(*keys: str) -> Optional[str]:
    """First non-empty value among several env keys (new name, then legacy name)."""
    for key in keys:
        val = os.getenv(key)
        if val:
            return val
    return None


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str]
    api_secret: Optional[str]
    testnet: bool
    fee_discount_asset: str
    non_discount_fee_rate: Decimal
    http_timeout: float
    log_level: str
    log_file: Optional[str]
    tick_log_cooldown_sec: float
    metrics_port: int

    def dump(self) -> dict:
        """Return a dict of settings for logging, credentials masked."""
        data = self.__dict__.copy()
        data["api_key"] = "***" if self.api_key else None
        data["api_secret"] = "***" if self.api_secret else None
        data["non_discount_fee_rate"] = str(self.non_discount_fee_rate)
        return data

    @classmethod
    def load(cls) -> "Settings":
        def _int_env(key: str, default: int) -> int:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            return int(raw)

        def _float_env(key: str, default: float) -> float:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            return float(raw)

        def _decimal_env(key: str, default: str) -> Decimal:
            raw = os.getenv(key) or default
            try:
                return Decimal(raw)
            except InvalidOperation as exc:
                raise ValueError(f"{key} must be a number, got {raw!r}") from exc

        log_file = os.getenv("OCO_LOG_FILE")
        cfg = cls(
            api_key=_env_first("BINANCE_API_KEY", "APIKEY"),
            api_secret=_env_first("BINANCE_API_SECRET", "APISECRET"),
            testnet=env_bool("BINANCE_TESTNET", False),
            fee_discount_asset=os.getenv("OCO_FEE_DISCOUNT_ASSET", "BNB").upper(),
            non_discount_fee_rate=_decimal_env("OCO_NON_DISCOUNT_FEE_RATE", "0.001"),
            http_timeout=_float_env("OCO_HTTP_TIMEOUT", 10.0),
            log_level=os.getenv("OCO_LOG_LEVEL", "INFO").upper(),
            log_file="ocobot.log" if log_file is None else (log_file or None),
            tick_log_cooldown_sec=_float_env("OCO_TICK_LOG_COOLDOWN_SEC", 5.0),
            metrics_port=_int_env("OCO_METRICS_PORT", 0),
        )
        cfg._validate()
        return cfg

    def require_credentials(self) -> None:
        if not self.api_key or not self.api_secret:
            raise ValueError("Missing credentials: set BINANCE_API_KEY and BINANCE_API_SECRET")

    def _validate(self) -> None:
        if not (Decimal("0") <= self.non_discount_fee_rate < Decimal("1")):
            raise ValueError("OCO_NON_DISCOUNT_FEE_RATE must be in [0, 1)")
        if self.http_timeout <= 0:
            raise ValueError("OCO_HTTP_TIMEOUT must be > 0")
        if self.tick_log_cooldown_sec < 0:
            raise ValueError("OCO_TICK_LOG_COOLDOWN_SEC must be >= 0")
        if self.metrics_port < 0:
            raise ValueError("OCO_METRICS_PORT must be >= 0")
        if not self.fee_discount_asset:
            raise ValueError("OCO_FEE_DISCOUNT_ASSET must not be empty")
