from drivers.models import AvailabilityStatus, Driver
from drivers.registry import DriverRegistry
from dispatch.exceptions import InvalidStateTransition
from dispatch.locks import driver_key


def handle_driver_acceptance(registry: DriverRegistry, driver_id: str, request_id: str, service_type_id: str) -> Driver:
    """
    Called when a driver officially accepts a request.
    The driver must be ONLINE, APPROVED, eligible for the service type and free;
    they flip to ON_TRIP with this request as their single active assignment.
    """
    with registry.locks.lock(driver_key(driver_id)):
        driver = registry.get(driver_id)

        if not driver.is_approved:
            raise InvalidStateTransition(
                f"Driver {driver_id} is not approved ({driver.approval.value})",
                request_id=request_id,
                current=driver.availability.value,
                target=AvailabilityStatus.ON_TRIP.value,
            )
        if not driver.can_serve(service_type_id):
            raise InvalidStateTransition(
                f"Driver {driver_id} is not eligible for service type {service_type_id}",
                request_id=request_id,
                current=driver.availability.value,
                target=AvailabilityStatus.ON_TRIP.value,
            )

        # availability and the single-assignment rule are checked by the registry
        return registry.assign_trip(driver_id, request_id)


def handle_driver_release(registry: DriverRegistry, driver_id: str, request_id: str) -> Driver:
    """
    Completion or cancellation: the driver goes back to ONLINE.
    Never called mid-flow.
    """
    return registry.release_trip(driver_id, request_id)


def handle_driver_handover(registry: DriverRegistry, driver_id: str, request_id: str, next_request_id: str) -> Driver:
    """
    A pooled ride's assigned member cancelled: the driver keeps the group
    and is now assigned through the next remaining member.
    """
    return registry.handover_trip(driver_id, request_id, next_request_id)
