#Purpose: Non-routing hard eligibility filtering (rule gates).
#Builds the base candidate set before distance ranking.
#Gates:
#online (ON_TRIP / BREAK / OFFLINE drivers never receive offers)
#approved (PENDING / REJECTED / SUSPENDED never receive offers)
#service type eligibility
#known current location (no location, no distance, no offer)

#Output: "rule-qualified drivers" in registry order (still not ranked).

from typing import Iterable, List

from drivers.models import ApprovalStatus, AvailabilityStatus, Driver


def is_dispatchable(driver: Driver, service_type_id: str) -> bool:
    """
    True when the driver passes every hard gate for the service type.
    """
    if driver.availability != AvailabilityStatus.ONLINE:
        return False
    if driver.approval != ApprovalStatus.APPROVED:
        return False
    if not driver.can_serve(service_type_id):
        return False
    if driver.location is None:
        return False
    return True


def build_base_candidates(drivers: Iterable[Driver], service_type_id: str) -> List[Driver]:
    """
    Returns only drivers that may receive the request, keeping input order.
    """
    candidates = []

    for driver in drivers:
        if is_dispatchable(driver, service_type_id):
            candidates.append(driver)

    return candidates
