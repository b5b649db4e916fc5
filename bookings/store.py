"""
Purpose: Holds requests and shared-ride groups, plus the unassigned queue.
What it does:
- Owns the in-memory maps:
   - requests by id
   - unassigned request ids (FIFO, waiting for a driver)
   - shared-ride groups by id

Provides operations:
   - add / save / get requests
   - enqueue_unassigned / unassigned / is_queued / remove_from_queue, queue_wait_seconds
   - save / get / delete groups

Hands every write to an optional persistence hook (PersistRequest / PersistGroup),
which is assumed strongly consistent for single-row updates.

Rule: Store owns storage, the lifecycle owns status changes.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from dispatch.exceptions import NotFoundError, ValidationError

from .models import ServiceRequest, SharedRideGroup

PersistRequest = Callable[[ServiceRequest], None]
PersistGroup = Callable[[SharedRideGroup], None]


class RequestStore:
    """
    In-memory request storage and unassigned queue.
    """
    def __init__(self, persist: Optional[PersistRequest] = None):
        self.persist = persist
        self._guard = threading.Lock()
        #storage for requests by id
        self._requests: Dict[str, ServiceRequest] = {}
        #ids waiting for a driver, oldest first
        self._unassigned_ids: List[str] = []
        #when each id entered the unassigned queue
        self._entered_queue_at: Dict[str, datetime] = {}

    # --- Public API ---

    def add(self, request: ServiceRequest) -> ServiceRequest:
        """
        Insert a brand-new request.
        """
        with self._guard:
            if request.id in self._requests:
                raise ValidationError(f"Request {request.id} already exists")
            self._requests[request.id] = request
        self._persist(request)
        return request

    def save(self, request: ServiceRequest) -> ServiceRequest:
        """
        Replace the stored version of an existing request.
        """
        with self._guard:
            if request.id not in self._requests:
                raise NotFoundError(f"Request {request.id} not found")
            self._requests[request.id] = request
        self._persist(request)
        return request

    def get(self, request_id: str) -> ServiceRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise NotFoundError(f"Request {request_id} not found")
        return request

    def find(self, request_id: str) -> Optional[ServiceRequest]:
        return self._requests.get(request_id)

    def all(self) -> List[ServiceRequest]:
        with self._guard:
            return list(self._requests.values())

    #---- Unassigned queue ----

    def enqueue_unassigned(self, request_id: str, now: Optional[datetime] = None) -> None:
        now = now or datetime.now(timezone.utc)
        with self._guard:
            if request_id in self._entered_queue_at:
                #idempotency : dont double insert
                return
            self._unassigned_ids.append(request_id)
            self._entered_queue_at[request_id] = now

    def unassigned(self) -> List[ServiceRequest]:
        with self._guard:
            return [self._requests[request_id] for request_id in self._unassigned_ids]

    def is_queued(self, request_id: str) -> bool:
        return request_id in self._entered_queue_at

    def remove_from_queue(self, request_id: str) -> None:
        with self._guard:
            if request_id in self._unassigned_ids:
                self._unassigned_ids.remove(request_id)
            self._entered_queue_at.pop(request_id, None)

    def queue_wait_seconds(self, request_id: str, now: Optional[datetime] = None) -> Optional[float]:
        """
        How long a request has been waiting for a driver.
        """
        now = now or datetime.now(timezone.utc)
        t0 = self._entered_queue_at.get(request_id)
        if not t0:
            return None
        return (now - t0).total_seconds()

    def _persist(self, request: ServiceRequest) -> None:
        if self.persist is not None:
            self.persist(request)


class GroupStore:
    """
    In-memory shared-ride group storage (insertion ordered).
    """
    def __init__(self, persist: Optional[PersistGroup] = None):
        self.persist = persist
        self._guard = threading.Lock()
        self._groups: Dict[str, SharedRideGroup] = {}

    def save(self, group: SharedRideGroup) -> SharedRideGroup:
        with self._guard:
            self._groups[group.id] = group
        if self.persist is not None:
            self.persist(group)
        return group

    def get(self, group_id: str) -> SharedRideGroup:
        group = self._groups.get(group_id)
        if group is None:
            raise NotFoundError(f"Shared ride group {group_id} not found")
        return group

    def find(self, group_id: str) -> Optional[SharedRideGroup]:
        return self._groups.get(group_id)

    def delete(self, group_id: str) -> None:
        with self._guard:
            self._groups.pop(group_id, None)

    def all(self) -> List[SharedRideGroup]:
        with self._guard:
            return list(self._groups.values())
