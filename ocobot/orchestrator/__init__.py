"""
Orchestrator package - Thin coordination layer.

Wires the controllers, gateway and streams of one position onto the event
bus and runs it to an outcome.
"""

from ocobot.orchestrator.position_orchestrator import OrchestratorConfig, PositionOrchestrator

__all__ = ["OrchestratorConfig", "PositionOrchestrator"]
