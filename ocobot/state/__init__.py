"""
State package.

Holds the single in-memory position state. Nothing is persisted: a restart
starts from scratch and the operator reconciles open orders by hand.
"""

from ocobot.state.position_state import PositionState, Outcome

__all__ = ["PositionState", "Outcome"]
