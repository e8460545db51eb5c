"""
Core services for the application.

This package contains schedule expansion, dose status classification,
the dose ledger, adherence aggregation and inventory projection.
"""

from .adherence import AdherenceAggregator
from .clock import Clock, FixedClock, SystemClock
from .inventory import InventoryProjector
from .ledger import DoseLedger
from .results import Result
from .schedule import expand, is_scheduled_slot, resolve_daily_slots, window_bounds
from .status import StatusClassifier, classify
from .store import PrescriptionStore
from .tracker import MedicationTracker

__all__ = [
    "AdherenceAggregator",
    "Clock",
    "DoseLedger",
    "FixedClock",
    "InventoryProjector",
    "MedicationTracker",
    "PrescriptionStore",
    "Result",
    "StatusClassifier",
    "SystemClock",
    "classify",
    "expand",
    "is_scheduled_slot",
    "resolve_daily_slots",
    "window_bounds",
]
