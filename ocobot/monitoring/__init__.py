"""
Monitoring package.

Prometheus counters for order activity.
"""

from ocobot.monitoring.metrics import PositionMetrics, start_metrics_server

__all__ = ["PositionMetrics", "start_metrics_server"]
