"""
AnswerDesk - customer-support knowledge base.

Question/answer records in a canonical store, mirrored into a vector index,
searched through a rerank-with-fallback retrieval pipeline.
"""

__version__ = "0.1.0"
