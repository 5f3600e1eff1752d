"""
Knowledge record models.

A KnowledgeRecord is a question/answer pair owned by the canonical store. Its
``sync_status`` tracks whether the vector index holds an up-to-date copy, and
may only move along the transitions declared in ``SyncStatus``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from answerdesk.core.exceptions import InvalidTransitionError, ValidationError

DEFAULT_LANGUAGE = "ru"


class SyncStatus(str, Enum):
    """Vector sync state of a knowledge record."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    SKIPPED = "skipped"

    def can_transition_to(self, new: "SyncStatus") -> bool:
        return new in _TRANSITIONS[self]

    @classmethod
    def ensure_transition(cls, current: "SyncStatus", new: "SyncStatus") -> "SyncStatus":
        """Return ``new`` if ``current -> new`` is allowed, raise otherwise."""
        if not current.can_transition_to(new):
            raise InvalidTransitionError(current.value, new.value)
        return new


# Every edit resets to pending; only a sync attempt leaves pending.
_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.PENDING: frozenset(
        {SyncStatus.PENDING, SyncStatus.READY, SyncStatus.SKIPPED, SyncStatus.FAILED}
    ),
    SyncStatus.READY: frozenset({SyncStatus.PENDING}),
    SyncStatus.FAILED: frozenset({SyncStatus.PENDING}),
    SyncStatus.SKIPPED: frozenset({SyncStatus.PENDING}),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_text(value: str | None) -> str:
    return (value or "").strip()


def question_key(question: str) -> str:
    """Uniqueness key for questions: trimmed and case-folded."""
    return normalize_text(question).casefold()


@dataclass
class KnowledgeRecord:
    """A question/answer pair in the canonical store."""

    id: str
    question: str
    answer: str
    language: str = DEFAULT_LANGUAGE
    sync_status: SyncStatus = SyncStatus.PENDING
    vector_ref: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def question_key(self) -> str:
        return question_key(self.question)

    @property
    def embedding_text(self) -> str:
        """Text embedded for the vector index: question, blank line, answer."""
        return f"{self.question}\n\n{self.answer}"

    @property
    def effective_vector_ref(self) -> str:
        return self.vector_ref or self.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "answer": self.answer,
            "language": self.language,
            "sync_status": self.sync_status.value,
            "vector_ref": self.vector_ref,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class RecordInput:
    """Validated question/answer/language triple."""

    question: str
    answer: str
    language: str | None = None

    @classmethod
    def build(
        cls,
        question: str | None,
        answer: str | None,
        language: str | None = None,
    ) -> "RecordInput":
        """
        Trim and validate user input.

        Raises:
            ValidationError: If question or answer is empty, or the language
                tag is not 2-8 characters long.
        """
        question = normalize_text(question)
        answer = normalize_text(answer)
        if not question:
            raise ValidationError("Question is required", field="question")
        if not answer:
            raise ValidationError("Answer is required", field="answer")

        if language is not None:
            language = normalize_text(language)
            if not 2 <= len(language) <= 8:
                raise ValidationError(
                    "Language must be 2-8 characters", field="language"
                )

        return cls(question=question, answer=answer, language=language or None)


@dataclass
class Page:
    """One page of a record listing."""

    total: int
    page: int
    page_size: int
    items: list[KnowledgeRecord]
