"""
Request lifecycle: per-vertical status graphs and the transition function.
"""
from .graphs import (
    Actor,
    ActorRole,
    Effect,
    Transition,
    StatusGraph,
    TERMINAL_STATUSES,
    graph_for,
    initial_status,
    progress_percentage,
)
from .request_state import LifecycleStateMachine
from .driver_state import handle_driver_acceptance, handle_driver_handover, handle_driver_release

__all__ = [
    "Actor",
    "ActorRole",
    "Effect",
    "Transition",
    "StatusGraph",
    "TERMINAL_STATUSES",
    "graph_for",
    "initial_status",
    "progress_percentage",
    "LifecycleStateMachine",
    "handle_driver_acceptance",
    "handle_driver_handover",
    "handle_driver_release",
]
