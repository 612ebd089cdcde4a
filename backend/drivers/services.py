import logging

from drivers.models import Driver

logger = logging.getLogger(__name__)


# DRIVER AVAILABILITY UPDATE
def update_driver_availability(driver_id: int, availability: str) -> bool:
    """
    Set a driver's availability (available / on_trip / off_duty).

    Returns False when the driver row no longer exists.
    """
    valid = {choice for choice, _ in Driver.AVAILABILITY_CHOICES}
    if availability not in valid:
        raise ValueError(f"Unknown availability: {availability}")

    updated = Driver.objects.filter(id=driver_id).update(availability=availability)
    if not updated:
        logger.warning("Driver %s not found while setting availability=%s", driver_id, availability)
        return False

    logger.info("Driver %s availability -> %s", driver_id, availability)
    return True
