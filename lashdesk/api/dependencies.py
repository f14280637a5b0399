"""
API dependencies for FastAPI dependency injection.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from lashdesk.lib.db import get_db as get_db_session
from lashdesk.services.booking_service import BookingService
from lashdesk.services.catalog import ServiceCatalog, get_catalog
from lashdesk.services.checkout_service import CheckoutService
from lashdesk.services.notification_service import NotificationService


# Re-export get_db for convenience
get_db = get_db_session


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_service_catalog() -> ServiceCatalog:
    return get_catalog()


def get_booking_service(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service),
) -> BookingService:
    return BookingService(db, notifier)


def get_checkout_service(
    db: Session = Depends(get_db),
    catalog: ServiceCatalog = Depends(get_service_catalog),
) -> CheckoutService:
    return CheckoutService(db, catalog.offerings)
