"""
Completion-event ingestion.

Components:
- IngestionMerger: folds one batch of completion events into the store
- SequentialBatchProcessor: runs batches one at a time, in arrival order
- SyncSession: started/progress/complete/error lifecycle and cursor handling
"""

from .batch_processor import ProcessorState, SequentialBatchProcessor
from .merger import IngestionMerger, IngestResult
from .schemas import CompletionEvent, ItemMetadata, SyncCursor, parse_event
from .session import SyncReport, SyncSession, SyncStatus

__all__ = [
    "CompletionEvent",
    "ItemMetadata",
    "SyncCursor",
    "parse_event",
    "IngestionMerger",
    "IngestResult",
    "ProcessorState",
    "SequentialBatchProcessor",
    "SyncReport",
    "SyncSession",
    "SyncStatus",
]
