"""
Vector synchronization for AnswerDesk.

Keeps the Pinecone namespace eventually consistent with the canonical
knowledge store.
"""

from answerdesk.sync.engine import (
    MAX_REPORTED_ERRORS,
    DeleteAllReport,
    ResyncReport,
    SyncEngine,
    VectorRemoval,
)

__all__ = [
    "MAX_REPORTED_ERRORS",
    "DeleteAllReport",
    "ResyncReport",
    "SyncEngine",
    "VectorRemoval",
]
