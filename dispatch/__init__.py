#Expose the high-level pipeline pieces:
#Error kinds (shared with bookings/ and drivers/, so imported first)
#Candidate filtering (hard rules)
#Scoring / ranking (the dispatch engine query)
#The Dispatcher orchestrator and the lifecycle live in dispatch.dispatcher and
#dispatch.state_machines; import them from there (they depend on bookings/).

from .exceptions import (
    DispatchError,
    ValidationError,
    NotFoundError,
    InvalidStateTransition,
    UnauthorizedActor,
    CapacityExceeded,
    user_message,
)
from .candidate_filter import build_base_candidates
from .scoring import rank_candidates, find_best_driver #the dispatch engine query

__all__ = [
    "DispatchError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateTransition",
    "UnauthorizedActor",
    "CapacityExceeded",
    "user_message",
    "build_base_candidates",
    "rank_candidates",
    "find_best_driver",
]
