"""
Infrastructure package.

Logging setup and the Binance spot exchange adapter.
"""

from ocobot.infra.logging_cfg import build_logger, log_event

__all__ = ["build_logger", "log_event"]
