#Purpose: Upstream input gates (nothing malformed reaches matching or pricing).
#Checks a RequestDraft against its vertical's required fields and ranges.
#Also turns an unresolvable address into a ValidationError, so a request
#whose address failed to resolve never reaches the dispatch engine.

from datetime import datetime
from typing import Optional

from bookings.models import RequestDraft, ServiceType, ServiceVertical
from bookings.pooling.policy import PoolingPolicy, default_pooling_policy
from routing.coordinates import Coordinate
from routing.geocoder import MapboxGeocoder

from .exceptions import ValidationError

# verticals that travel from a pickup to a dropoff
ROUTED_VERTICALS = (
    ServiceVertical.RIDE,
    ServiceVertical.TAXI,
    ServiceVertical.SHARED_RIDE,
    ServiceVertical.DELIVERY,
    ServiceVertical.HOUSE_MOVING,
)


def resolve_or_reject(geocoder: MapboxGeocoder, text: str) -> Coordinate:
    """
    Forward-geocode an address or reject the request.
    Transport failures (GeocoderError) propagate as they are.
    """
    resolved = geocoder.resolve(text)
    if resolved is None:
        raise ValidationError(f"Invalid address: {text!r}")
    return resolved.coordinate


def _check_coordinate(name: str, coordinate: Optional[Coordinate], required: bool) -> None:
    if coordinate is None:
        if required:
            raise ValidationError(f"{name} location is required")
        return
    if not -90.0 <= coordinate.latitude <= 90.0:
        raise ValidationError(f"{name} latitude must be within [-90, 90]")
    if not -180.0 <= coordinate.longitude <= 180.0:
        raise ValidationError(f"{name} longitude must be within [-180, 180]")


def _check_future(name: str, when: Optional[datetime], now: datetime) -> None:
    if when is None:
        raise ValidationError(f"{name} is required")
    if when.tzinfo is None:
        raise ValidationError(f"{name} must be timezone-aware")
    if when <= now:
        raise ValidationError(f"{name} must be in the future")


def validate_draft(
    draft: RequestDraft,
    service_type: ServiceType,
    now: datetime,
    pooling: Optional[PoolingPolicy] = None,
) -> None:
    """
    Raises ValidationError on the first problem found.
    """
    pooling = pooling or default_pooling_policy()
    vertical = service_type.vertical

    if not draft.requester_id:
        raise ValidationError("requester_id is required")
    if draft.service_type_id != service_type.id:
        raise ValidationError("service_type_id does not match the service type")

    routed = vertical in ROUTED_VERTICALS
    _check_coordinate("pickup", draft.pickup, required=True)
    _check_coordinate("dropoff", draft.dropoff, required=routed)

    if draft.passenger_count < 1:
        raise ValidationError("passenger_count must be >= 1")

    if vertical == ServiceVertical.SHARED_RIDE:
        if not pooling.min_passengers <= draft.passenger_count <= pooling.max_passengers:
            raise ValidationError(
                f"passenger_count must be between {pooling.min_passengers} and {pooling.max_passengers}"
            )
        if not pooling.min_wait_minutes <= draft.max_wait_minutes <= pooling.max_wait_minutes:
            raise ValidationError(
                f"max_wait_minutes must be between {pooling.min_wait_minutes} and {pooling.max_wait_minutes}"
            )
        if not pooling.min_detour_percent <= draft.max_detour_percent <= pooling.max_detour_percent:
            raise ValidationError(
                f"max_detour_percent must be between {pooling.min_detour_percent:g} and {pooling.max_detour_percent:g}"
            )

    elif vertical == ServiceVertical.DELIVERY:
        if not draft.items:
            raise ValidationError("A delivery needs at least one item")
        for item in draft.items:
            if item.quantity < 1:
                raise ValidationError(f"Item {item.product_id} quantity must be >= 1")
            if item.unit_price < 0:
                raise ValidationError(f"Item {item.product_id} price must be >= 0")

    elif vertical == ServiceVertical.HOUSE_MOVING:
        if not draft.inventory:
            raise ValidationError("A move needs an inventory")
        for item in draft.inventory:
            if item.quantity < 1:
                raise ValidationError(f"Inventory item {item.name!r} quantity must be >= 1")
        if draft.helpers_count < 0:
            raise ValidationError("helpers_count must be >= 0")
        _check_future("scheduled_time", draft.scheduled_time, now)

    elif vertical == ServiceVertical.DAY_BOOKING:
        if not draft.requested_driver_id:
            raise ValidationError("A day booking needs a driver")
        if not (draft.district_rate or draft.day_rate):
            raise ValidationError("The driver has no day rate")
        if (draft.day_rate or 0) < 0 or (draft.district_rate or 0) < 0:
            raise ValidationError("Day rates must be >= 0")
        _check_future("scheduled_time", draft.scheduled_time, now)
