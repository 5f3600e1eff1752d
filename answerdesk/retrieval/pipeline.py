"""
Hybrid Retrieval Pipeline.

Turns a free-text query into ranked question/answer matches:

    embed (query intent)
      -> vector query (top K)
      -> reconcile metadata (vector metadata, else canonical store)
      -> rerank fallback chain
      -> confidence gate
      -> assembly (+ pipeline trace)

Usage:
    pipeline = RetrievalPipeline(store, embeddings, vector_index, rerank_chain)
    result = await pipeline.search("How do I reset my password?", top_k=5)

    for match in result.matches:
        print(f"[{match.score:.3f}] {match.question}")
"""

from __future__ import annotations

from typing import Any, Optional

import structlog

from answerdesk.core.exceptions import SearchUnavailableError, ValidationError
from answerdesk.knowledge.models import DEFAULT_LANGUAGE, normalize_text
from answerdesk.knowledge.store import KnowledgeStore
from answerdesk.monitoring.metrics import record_confidence_rejection, track_search
from answerdesk.providers.embeddings import (
    EmbeddingIntent,
    EmbeddingProvider,
    is_usable_vector,
)
from answerdesk.providers.vector_index import VectorIndex, VectorMatch
from answerdesk.retrieval.models import (
    Candidate,
    PipelineTrace,
    RerankTrace,
    SearchMatch,
    SearchResult,
    VectorTrace,
)
from answerdesk.retrieval.rerank import RerankChain, RerankExecution

logger = structlog.get_logger(__name__)

DEFAULT_MIN_RERANK_SCORE = 0.01
MAX_TOP_K = 20


def _metadata_fields(metadata: Optional[dict[str, Any]]) -> Optional[tuple[str, str, str]]:
    """Return (question, answer, language) if the vector metadata is well-formed."""
    if not isinstance(metadata, dict):
        return None
    question = metadata.get("question")
    answer = metadata.get("answer")
    if not isinstance(question, str) or not isinstance(answer, str):
        return None
    question, answer = normalize_text(question), normalize_text(answer)
    if not question or not answer:
        return None
    language = metadata.get("language")
    if not isinstance(language, str) or not language.strip():
        language = DEFAULT_LANGUAGE
    return question, answer, language.strip()


class RetrievalPipeline:
    """
    Search over the knowledge base.

    Args:
        store: Canonical store, used for metadata the vector entry lacks
        embeddings: Embedding provider used with query intent
        vector_index: Vector index, or None when not configured
        rerank_chain: Rerank fallback chain
        namespace: Vector namespace to query
        min_rerank_score: Confidence gate threshold on the top rerank score
        max_top_k: Upper bound for top_k
    """

    def __init__(
        self,
        store: KnowledgeStore,
        embeddings: EmbeddingProvider,
        vector_index: Optional[VectorIndex],
        rerank_chain: RerankChain,
        namespace: str = "qa",
        min_rerank_score: float = DEFAULT_MIN_RERANK_SCORE,
        max_top_k: int = MAX_TOP_K,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._index = vector_index
        self._rerank = rerank_chain
        self._namespace = namespace
        self._min_rerank_score = min_rerank_score
        self._max_top_k = max_top_k

    @property
    def is_available(self) -> bool:
        return self._index is not None

    def _validate(self, query: str, top_k: int) -> str:
        query = normalize_text(query)
        if not query:
            raise ValidationError("Query cannot be empty", field="query")
        if not isinstance(top_k, int) or not 1 <= top_k <= self._max_top_k:
            raise ValidationError(
                f"top_k must be between 1 and {self._max_top_k}",
                field="top_k",
            )
        return query

    async def search(self, query: str, top_k: int = 5) -> SearchResult:
        """
        Run the full pipeline.

        Raises:
            ValidationError: Empty query or top_k out of range.
            SearchUnavailableError: No vector index configured.
            ProviderError: The embedding or vector query failed.
        """
        query = self._validate(query, top_k)
        if self._index is None:
            raise SearchUnavailableError()

        trace = PipelineTrace(
            vector=VectorTrace(
                index=self._index.index_name,
                namespace=self._namespace,
                top_k=top_k,
            ),
            rerank=RerankTrace(threshold=self._min_rerank_score),
        )

        with track_search():
            embedding = await self._embeddings.embed(query, EmbeddingIntent.QUERY)
            if not is_usable_vector(embedding.vector):
                logger.warning("search_query_embedding_empty", model=embedding.model_name)
                trace.rerank.fallback_reason = "query embedding was empty"
                return SearchResult(query=query, top_k=top_k, matches=[], pipeline=trace)

            hits = await self._index.query(self._namespace, embedding.vector, top_k)
            candidates = await self._reconcile(hits, trace)
            result = await self._rank(query, top_k, candidates, trace)

        logger.info(
            "search_completed",
            top_k=top_k,
            hits=len(hits),
            candidates=len(candidates),
            matches=len(result.matches),
            rerank_model=trace.rerank.model,
            rejected=result.reranker_rejected,
        )
        return result

    async def _reconcile(self, hits: list[VectorMatch], trace: PipelineTrace) -> list[Candidate]:
        """
        Attach question/answer/language to each hit, keeping vector order.

        The canonical row wins whenever it exists; vector metadata is only
        used for ids the store does not return.
        """
        ids = list(dict.fromkeys(hit.id for hit in hits))
        canonical = {}
        if ids:
            canonical = {record.id: record for record in await self._store.find_by_ids(ids)}

        candidates = []
        for position, hit in enumerate(hits):
            record = canonical.get(hit.id)
            if record is not None:
                fields = (record.question, record.answer, record.language)
            else:
                fields = _metadata_fields(hit.metadata)
            if fields is None:
                logger.warning(
                    "vector_index_drift_candidate_dropped",
                    vector_id=hit.id,
                    namespace=self._namespace,
                )
                trace.dropped_ids.append(hit.id)
                continue

            question, answer, language = fields
            candidates.append(
                Candidate(
                    id=hit.id,
                    vector_score=hit.score,
                    question=question,
                    answer=answer,
                    language=language,
                    position=position,
                )
            )
        return candidates

    async def _rank(
        self,
        query: str,
        top_k: int,
        candidates: list[Candidate],
        trace: PipelineTrace,
    ) -> SearchResult:
        vector_matches = [
            SearchMatch.from_candidate(c)
            for c in sorted(candidates, key=lambda c: (-c.vector_score, c.position))
        ][:top_k]

        if not candidates:
            trace.rerank.fallback_reason = "no candidates"
            return SearchResult(query=query, top_k=top_k, matches=[], pipeline=trace)

        execution: RerankExecution = await self._rerank.run(query, [c.text for c in candidates])
        trace.rerank.attempted_models = execution.attempted_models
        trace.rerank.fallback_reason = execution.warning

        if not execution.applied:
            return SearchResult(query=query, top_k=top_k, matches=vector_matches, pipeline=trace)

        trace.rerank.model = execution.model
        trace.rerank.applied = True

        scored = [(candidates[item.index], item.score) for item in execution.results]
        scored.sort(key=lambda pair: (-pair[1], -pair[0].vector_score, pair[0].position))
        top_score = scored[0][1]
        trace.rerank.top_score = top_score

        if top_score < self._min_rerank_score:
            record_confidence_rejection()
            trace.rerank.rejected = True
            logger.info(
                "search_confidence_gate_rejected",
                model=execution.model,
                top_score=top_score,
                threshold=self._min_rerank_score,
            )
            return SearchResult(
                query=query,
                top_k=top_k,
                matches=[],
                fallback_matches=vector_matches,
                reranker_rejected=True,
                pipeline=trace,
            )

        matches = [SearchMatch.from_candidate(c, rerank_score=score) for c, score in scored]
        return SearchResult(query=query, top_k=top_k, matches=matches[:top_k], pipeline=trace)
