"""
Purpose: Error kinds shared by dispatch, grouping and the lifecycle.
What it does:
- ValidationError: malformed input, rejected before core logic runs
- NotFoundError: unknown ids, nothing to match (an expected outcome, not a crash)
- InvalidStateTransition: status graph violation
- UnauthorizedActor: wrong actor for a transition
- CapacityExceeded: a group join would overrun max capacity

Engine and grouper never raise for "nothing found"; they return None / a new group.
"""

from __future__ import annotations

from typing import Optional

GENERIC_UNAVAILABLE_MESSAGE = "Service is currently unavailable, please try again."


class DispatchError(Exception):
    """Base class for every error raised by the dispatch core."""

    default_message = "Request could not be processed."


class ValidationError(DispatchError):
    default_message = "The request is invalid."


class NotFoundError(DispatchError):
    default_message = GENERIC_UNAVAILABLE_MESSAGE


class InvalidStateTransition(DispatchError):
    default_message = "This action is not allowed in the current state."

    def __init__(
        self,
        message: str,
        *,
        request_id: Optional[str] = None,
        current: Optional[str] = None,
        target: Optional[str] = None,
    ):
        super().__init__(message)
        self.request_id = request_id
        self.current = current
        self.target = target


class UnauthorizedActor(DispatchError):
    default_message = "You are not allowed to perform this action."

    def __init__(self, message: str, *, actor_id: Optional[str] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.actor_id = actor_id
        self.request_id = request_id


class CapacityExceeded(DispatchError):
    default_message = "The shared ride is full."


def user_message(error: Exception) -> str:
    """
    Message safe to show to a requester or driver.
    NotFound collapses to the generic "try again" text; state and
    authorization errors keep their specific wording.
    """
    if isinstance(error, NotFoundError):
        return GENERIC_UNAVAILABLE_MESSAGE
    if isinstance(error, (InvalidStateTransition, UnauthorizedActor, ValidationError, CapacityExceeded)):
        return str(error) or error.default_message
    if isinstance(error, DispatchError):
        return error.default_message
    return DispatchError.default_message
