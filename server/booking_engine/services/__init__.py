"""Service layer package."""

from .booking_lifecycle import BookingLifecycle
from .booking_service import BookingService, CancellationResult
from .event_service import EventDispatcher, EventService
from .inventory_service import InventoryService, ReconciliationReport
from .payment_gate import validate_payment
from .pricing import compute_total
from .reference_data import ReferenceDataGateway, SqlReferenceDataGateway
from .saga import Saga

__all__ = [
    "BookingLifecycle",
    "BookingService",
    "CancellationResult",
    "EventDispatcher",
    "EventService",
    "InventoryService",
    "ReconciliationReport",
    "ReferenceDataGateway",
    "Saga",
    "SqlReferenceDataGateway",
    "compute_total",
    "validate_payment",
]
