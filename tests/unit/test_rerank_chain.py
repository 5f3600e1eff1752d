"""Unit tests for the rerank fallback chain."""

import pytest

from answerdesk.core.exceptions import RerankProviderError
from answerdesk.providers.reranker import RerankItem, RerankResponse
from answerdesk.config.settings import Settings, dedupe_models
from answerdesk.retrieval.rerank import NOT_CONFIGURED_REASON, RerankChain
from answerdesk.retrieval.usage import InMemoryRerankUsageCounter

from tests.conftest import FakeReranker

DOCUMENTS = ["Q1\n\nA1", "Q2\n\nA2", "Q3\n\nA3"]


class TestDedupeModels:
    """Test model list normalization."""

    def test_drops_blanks_and_duplicates(self):
        assert dedupe_models(["rerank-v3.5", None, " ", "rerank-v3.5", "rerank-lite"]) == [
            "rerank-v3.5",
            "rerank-lite",
        ]

    def test_settings_share_normalization(self):
        """Configured models go through the same normalization."""
        settings = Settings(_env_file=None, rerank_model=" rerank-v3.5 ", rerank_fallback_model="rerank-v3.5")

        assert settings.rerank_models == ["rerank-v3.5"]


class TestRerankChain:
    """Test model fallback behavior."""

    @pytest.fixture
    def usage(self):
        return InMemoryRerankUsageCounter()

    @pytest.mark.asyncio
    async def test_not_configured(self, usage):
        """No provider means no attempt and an explanatory reason."""
        chain = RerankChain(None, ["rerank-v3.5"], usage)

        execution = await chain.run("query", DOCUMENTS)

        assert execution.applied is False
        assert execution.attempted_models == []
        assert execution.warning == NOT_CONFIGURED_REASON

    @pytest.mark.asyncio
    async def test_no_models_is_not_configured(self, usage):
        chain = RerankChain(FakeReranker(), [], usage)

        assert chain.is_configured is False

    @pytest.mark.asyncio
    async def test_primary_success(self, usage):
        reranker = FakeReranker({"primary": [0.2, 0.9, 0.5]})
        chain = RerankChain(reranker, ["primary", "fallback"], usage)

        execution = await chain.run("query", DOCUMENTS)

        assert execution.model == "primary"
        assert execution.attempted_models == ["primary"]
        assert [item.index for item in execution.results] == [1, 2, 0]
        assert execution.warning is None

    @pytest.mark.asyncio
    async def test_falls_back_when_primary_throws(self, usage):
        """The second model is applied when the first raises."""
        reranker = FakeReranker({
            "primary": RerankProviderError("cohere", "model not found [404]"),
            "fallback": [0.7, 0.1, 0.3],
        })
        chain = RerankChain(reranker, ["primary", "fallback"], usage)

        execution = await chain.run("query", DOCUMENTS)

        assert execution.model == "fallback"
        assert execution.attempted_models == ["primary", "fallback"]
        assert execution.warning == "primary: [cohere] model not found [404]"

    @pytest.mark.asyncio
    async def test_falls_back_when_primary_empty(self, usage):
        reranker = FakeReranker({
            "primary": RerankResponse(results=[], usage_units=1),
            "fallback": [0.7, 0.1, 0.3],
        })
        chain = RerankChain(reranker, ["primary", "fallback"], usage)

        execution = await chain.run("query", DOCUMENTS)

        assert execution.model == "fallback"
        assert "primary: returned no results" in execution.warning

    @pytest.mark.asyncio
    async def test_all_models_fail(self, usage):
        """Every failure reason is joined in order."""
        reranker = FakeReranker({
            "primary": RerankProviderError("cohere", "rate limited [429]"),
            "fallback": RerankProviderError("cohere", "unavailable [503]"),
        })
        chain = RerankChain(reranker, ["primary", "fallback"], usage)

        execution = await chain.run("query", DOCUMENTS)

        assert execution.applied is False
        assert execution.attempted_models == ["primary", "fallback"]
        assert execution.warning == (
            "primary: [cohere] rate limited [429] | fallback: [cohere] unavailable [503]"
        )

    @pytest.mark.asyncio
    async def test_records_usage_for_every_reporting_call(self, usage):
        """Units are counted even when the call yields nothing usable."""
        reranker = FakeReranker({
            "primary": RerankResponse(results=[], usage_units=2),
            "fallback": RerankResponse(results=[RerankItem(0, 0.8)], usage_units=3),
        })
        chain = RerankChain(reranker, ["primary", "fallback"], usage)

        await chain.run("query", DOCUMENTS)

        assert (await usage.snapshot()).units_used == 5

    @pytest.mark.asyncio
    async def test_ignores_out_of_range_indices(self, usage):
        reranker = FakeReranker({
            "primary": RerankResponse(results=[RerankItem(7, 0.9), RerankItem(1, 0.4), RerankItem(1, 0.3)]),
        })
        chain = RerankChain(reranker, ["primary"], usage)

        execution = await chain.run("query", DOCUMENTS)

        assert execution.results == [RerankItem(1, 0.4)]
