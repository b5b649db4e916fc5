"""
Pooling subpackage for the Bookings domain.

Public API:
- SharedRideGrouper
- SharedRideEstimate, PotentialMatch
- PoolingPolicy
"""

from .engine import SharedRideGrouper, SharedRideEstimate, PotentialMatch, LEAVABLE_STATUSES
from .policy import PoolingPolicy, default_pooling_policy

__all__ = [
    "SharedRideGrouper",
    "SharedRideEstimate",
    "PotentialMatch",
    "LEAVABLE_STATUSES",
    "PoolingPolicy",
    "default_pooling_policy",
]
