"""AnswerDesk HTTP API (FastAPI)."""
