"""
Prometheus metrics for a running position.

Organized into: execution, market data.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server


class PositionMetrics:
    """Counters for order activity on one symbol."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()
        self.registry = reg

        # === Execution Metrics ===
        self.orders_submitted = Counter(
            'orders_submitted_total',
            'Orders submitted to exchange',
            labelnames=['symbol', 'role'],
            registry=reg
        )
        self.orders_cancelled = Counter(
            'orders_cancelled_total',
            'Orders cancelled by the bot',
            labelnames=['symbol', 'role'],
            registry=reg
        )
        self.orders_filled = Counter(
            'orders_filled_total',
            'Tracked orders fully filled',
            labelnames=['symbol', 'role'],
            registry=reg
        )
        self.gateway_errors = Counter(
            'gateway_errors_total',
            'Failed exchange calls and streams',
            labelnames=['symbol', 'operation'],
            registry=reg
        )

        # === Market Data Metrics ===
        self.price_ticks = Counter(
            'price_ticks_total',
            'Trade price ticks received',
            labelnames=['symbol'],
            registry=reg
        )
        self.last_trade_price = Gauge(
            'last_trade_price',
            'Last trade price seen on the stream',
            labelnames=['symbol'],
            registry=reg
        )


def start_metrics_server(metrics: PositionMetrics, port: int) -> bool:
    """Expose metrics over HTTP on `port`. Returns False when disabled (port 0)."""
    if port <= 0:
        return False
    start_http_server(port, registry=metrics.registry)
    return True
