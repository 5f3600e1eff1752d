"""
AnswerDesk Test Suite.

- unit/: Knowledge store, sync engine, retrieval pipeline, providers and API
- integration/: End-to-end workflow through the HTTP API with provider fakes
- conftest.py: Provider fakes and shared fixtures

Run tests with: pytest
Run only integration tests: pytest -m integration
"""
