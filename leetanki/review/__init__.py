"""
Review scheduling.

Components:
- SM2Scheduler: pure ease/interval/streak transitions
- ReviewRecordStore: item metadata and review state persistence
- DueSetSelector: due counts, ranked due lists and summary stats
"""

from .models import DueEntry, HistoryEntry, Item, Outcome, ReviewRecord, ReviewState, SM2State
from .scheduler import SM2Config, SM2Scheduler
from .selector import DueQuery, DueSetSelector, ReviewStats
from .state_store import ReviewRecordStore, StoreSnapshot

__all__ = [
    # Data model
    "Outcome",
    "Item",
    "HistoryEntry",
    "SM2State",
    "ReviewState",
    "ReviewRecord",
    "DueEntry",
    # Scheduling
    "SM2Config",
    "SM2Scheduler",
    # Persistence
    "ReviewRecordStore",
    "StoreSnapshot",
    # Selection
    "DueSetSelector",
    "DueQuery",
    "ReviewStats",
]
