"""
Knowledge base for AnswerDesk.

Canonical storage of question/answer records:

- models: KnowledgeRecord, RecordInput and the SyncStatus state machine
- store: KnowledgeStore protocol with in-memory and Supabase backends
- service: KnowledgeService mutation facade (import from
  ``answerdesk.knowledge.service``; it depends on the sync engine)
"""

from answerdesk.knowledge.models import (
    DEFAULT_LANGUAGE,
    KnowledgeRecord,
    Page,
    RecordInput,
    SyncStatus,
    question_key,
)
from answerdesk.knowledge.store import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    InMemoryKnowledgeStore,
    KnowledgeStore,
    get_knowledge_store,
)

__all__ = [
    "DEFAULT_LANGUAGE",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "InMemoryKnowledgeStore",
    "KnowledgeRecord",
    "KnowledgeStore",
    "Page",
    "RecordInput",
    "SyncStatus",
    "get_knowledge_store",
    "question_key",
]
