"""
Bookings domain package.

Public API:
- Domain models: ServiceRequest, ServiceType, SharedRideGroup, RequestDraft,
  OrderItem, InventoryItem, ServiceVertical, RequestStatus, EmergencyPriority
- Storage: RequestStore, GroupStore
- (Shared-ride grouping lives in bookings.pooling)
"""
from .models import (
    ServiceRequest,
    ServiceType,
    SharedRideGroup,
    RequestDraft,
    OrderItem,
    InventoryItem,
    ServiceVertical,
    RequestStatus,
    EmergencyPriority,
)
from .store import RequestStore, GroupStore

__all__ = [
    "ServiceRequest",
    "ServiceType",
    "SharedRideGroup",
    "RequestDraft",
    "OrderItem",
    "InventoryItem",
    "ServiceVertical",
    "RequestStatus",
    "EmergencyPriority",
    "RequestStore",
    "GroupStore",
]
