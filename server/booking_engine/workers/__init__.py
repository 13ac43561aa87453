"""Background workers for the booking engine."""

from .event_dispatch_worker import EventDispatchWorker
from .seat_reconciliation_worker import SeatReconciliationWorker

__all__ = ["EventDispatchWorker", "SeatReconciliationWorker"]
