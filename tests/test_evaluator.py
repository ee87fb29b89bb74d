"""
Unit tests for buyer selection strategies
"""

import random

import httpx
import pytest

from pixelpay.buyer.evaluator import (
    AnthropicRanker,
    RandomPick,
    Ranker,
    RankingPick,
    create_strategy,
)
from pixelpay.errors import UpstreamUnavailable
from tests.factories import GalleryItemFactory


class FixedRanker(Ranker):
    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error

    async def rank(self, candidates):
        if self.error:
            raise self.error
        return self.answer


class FixedPick(RandomPick):
    async def pick(self, candidates):
        return len(candidates) - 1


@pytest.fixture
def candidates():
    return GalleryItemFactory.build_batch(3)


class TestRandomPick:
    @pytest.mark.asyncio
    async def test_index_in_range(self, candidates):
        strategy = RandomPick(random.Random(7))

        for _ in range(20):
            assert 0 <= await strategy.pick(candidates) < len(candidates)

    @pytest.mark.asyncio
    async def test_single_candidate(self):
        assert await RandomPick().pick([GalleryItemFactory()]) == 0


class TestRankingPick:
    @pytest.mark.asyncio
    async def test_uses_ranker_answer(self, candidates):
        assert await RankingPick(FixedRanker("2")).pick(candidates) == 2

    @pytest.mark.asyncio
    async def test_reads_leading_number(self, candidates):
        assert await RankingPick(FixedRanker("1. The neon one")).pick(candidates) == 1

    @pytest.mark.asyncio
    async def test_out_of_range_answer_picks_first(self, candidates):
        assert await RankingPick(FixedRanker("7")).pick(candidates) == 0

    @pytest.mark.asyncio
    async def test_non_numeric_answer_picks_first(self, candidates):
        assert await RankingPick(FixedRanker("the cat")).pick(candidates) == 0

    @pytest.mark.asyncio
    async def test_ranker_error_uses_fallback(self, candidates):
        strategy = RankingPick(FixedRanker(error=UpstreamUnavailable("ranker")), fallback=FixedPick())

        assert await strategy.pick(candidates) == 2


class TestAnthropicRanker:
    @pytest.mark.asyncio
    async def test_posts_listing(self, candidates):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"content": [{"type": "text", "text": " 1 \n"}]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            answer = await AnthropicRanker("sk-test", "claude-haiku-4-5-20251001", client).rank(candidates)

        assert answer == "1"
        request = seen[0]
        assert request.headers["x-api-key"] == "sk-test"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert candidates[2].prompt.encode() in request.content

    @pytest.mark.asyncio
    async def test_http_error(self, candidates):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(529))) as client:
            with pytest.raises(UpstreamUnavailable):
                await AnthropicRanker("sk-test", "model", client).rank(candidates)

    def test_prompt_numbers_candidates(self, candidates):
        prompt = AnthropicRanker("k", "m", None).prompt_for(candidates)

        assert f'0: [id {candidates[0].id}] "{candidates[0].prompt}"' in prompt
        assert f'2: [id {candidates[2].id}] "{candidates[2].prompt}"' in prompt
        assert f'(price: {candidates[1].price})' in prompt


class TestCreateStrategy:
    @pytest.mark.asyncio
    async def test_random_without_key(self):
        async with httpx.AsyncClient() as client:
            assert isinstance(create_strategy("", "m", client), RandomPick)

    @pytest.mark.asyncio
    async def test_ranking_with_key(self):
        async with httpx.AsyncClient() as client:
            strategy = create_strategy("sk-test", "m", client)

        assert isinstance(strategy, RankingPick)
        assert isinstance(strategy.ranker, AnthropicRanker)
