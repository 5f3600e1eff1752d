"""Data shapes produced by the retrieval pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class Candidate:
    """A vector hit with metadata reconciled against the canonical store."""

    id: str
    vector_score: float
    question: str
    answer: str
    language: str
    position: int

    @property
    def text(self) -> str:
        return f"{self.question}\n\n{self.answer}"


@dataclass
class SearchMatch:
    id: str
    score: float
    vector_score: float
    rerank_score: Optional[float]
    question: str
    answer: str
    language: str

    @classmethod
    def from_candidate(
        cls,
        candidate: Candidate,
        rerank_score: Optional[float] = None,
    ) -> SearchMatch:
        return cls(
            id=candidate.id,
            score=rerank_score if rerank_score is not None else candidate.vector_score,
            vector_score=candidate.vector_score,
            rerank_score=rerank_score,
            question=candidate.question,
            answer=candidate.answer,
            language=candidate.language,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class VectorTrace:
    index: Optional[str]
    namespace: str
    top_k: int


@dataclass
class RerankTrace:
    """Which rerank model produced the ordering, or why none did."""

    threshold: float
    model: Optional[str] = None
    applied: bool = False
    attempted_models: list[str] = field(default_factory=list)
    fallback_reason: Optional[str] = None
    rejected: bool = False
    top_score: Optional[float] = None


@dataclass
class PipelineTrace:
    """Per-request diagnostics. Never persisted."""

    vector: VectorTrace
    rerank: RerankTrace
    dropped_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SearchResult:
    query: str
    top_k: int
    matches: list[SearchMatch]
    pipeline: PipelineTrace
    fallback_matches: list[SearchMatch] = field(default_factory=list)
    reranker_rejected: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "top_k": self.top_k,
            "matches": [m.to_dict() for m in self.matches],
            "fallback_matches": [m.to_dict() for m in self.fallback_matches],
            "reranker_rejected": self.reranker_rejected,
            "pipeline": self.pipeline.to_dict(),
        }
