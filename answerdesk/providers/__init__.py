"""
External Providers.

Clients for the services the knowledge base depends on:

- embeddings: Cohere embed-v3 (query vs document intent) with a local
  pseudo-embedding fallback for offline use
- vector_index: Pinecone vector store operations (upsert, query, delete)
- reranker: Cohere Rerank for second-pass relevance scoring

Example:
    from answerdesk.providers import EmbeddingIntent, get_embeddings_service

    embeddings = get_embeddings_service(settings)
    result = await embeddings.embed("How do I reset my password?", EmbeddingIntent.QUERY)
"""

from answerdesk.providers.embeddings import (
    CohereEmbeddingsService,
    EmbeddingIntent,
    EmbeddingProvider,
    EmbeddingResult,
    LocalEmbeddingsService,
    get_embeddings_service,
    is_usable_vector,
)
from answerdesk.providers.reranker import (
    CohereReranker,
    RerankItem,
    RerankProvider,
    RerankResponse,
    get_reranker,
)
from answerdesk.providers.vector_index import (
    IndexStats,
    PineconeVectorIndex,
    VectorIndex,
    VectorMatch,
    get_vector_index,
)

__all__ = [
    # Embeddings
    "CohereEmbeddingsService",
    "EmbeddingIntent",
    "EmbeddingProvider",
    "EmbeddingResult",
    "LocalEmbeddingsService",
    "get_embeddings_service",
    "is_usable_vector",
    # Reranker
    "CohereReranker",
    "RerankItem",
    "RerankProvider",
    "RerankResponse",
    "get_reranker",
    # Vector index
    "IndexStats",
    "PineconeVectorIndex",
    "VectorIndex",
    "VectorMatch",
    "get_vector_index",
]
