"""Tests for QuestionRouter orchestration."""

import pytest
from unittest.mock import AsyncMock, Mock

from wine_router.adapters.memory import (
    InMemoryKnowledgeGraph,
    InMemoryModelStore,
    InMemoryPassageRetriever,
)
from wine_router.features.dictionaries import EntityDictionaries
from wine_router.models.core import (
    AcceptanceStats,
    AppellationRecord,
    CandidatePassage,
    GrapeRecord,
    RegionRecord,
    RoutingPath,
)
from wine_router.services.inference import InferenceEngine
from wine_router.services.knowledge_synthesis import KnowledgeSynthesizer
from wine_router.services.router import QuestionRouter
from wine_router.services.training_pipeline import build_training_examples
from wine_router.utils.error_handling import RetrievalError
from wine_router.utils.monitoring import MetricsCollector


def make_graph() -> InMemoryKnowledgeGraph:
    return InMemoryKnowledgeGraph(
        regions=[RegionRecord(1, "Tuscany", "Italy")],
        appellations=[AppellationRecord(10, "Chianti Classico", 1)],
        grapes=[GrapeRecord(1, "Sangiovese", "red")],
        grape_appellations=[(1, 10)],
    )


PASSAGES = [
    {"id": "p1", "text": "Sangiovese is the main grape of Chianti."},
    {"id": "p2", "text": "Steak pairs with Cabernet Sauvignon."},
    {"id": "p3", "text": "Chianti Classico is an appellation for Sangiovese wines."},
    {"id": "p4", "text": "Store wine bottles lying down in a cool cellar."},
]


class TestQuestionRouter:
    """Test cases for QuestionRouter."""

    def setup_method(self):
        graph = make_graph()
        self.metrics = MetricsCollector()
        self.engine = InferenceEngine(InMemoryModelStore(), metrics=self.metrics)
        self.retriever = InMemoryPassageRetriever(PASSAGES)
        self.router = QuestionRouter(
            self.engine,
            KnowledgeSynthesizer(graph),
            EntityDictionaries.from_knowledge_graph(graph),
            retriever=self.retriever,
            metrics=self.metrics,
        )

    @pytest.mark.asyncio
    async def test_structured_path(self):
        outcome = await self.router.route("What grapes are used in Tuscany of Italy?")

        assert outcome.path == RoutingPath.STRUCTURED
        assert outcome.synthesis.can_answer is True
        assert "Sangiovese" in outcome.synthesis.answer
        assert outcome.redirect_non_wine is False
        assert outcome.context == []
        assert self.metrics.get_counter("route_path_structured") == 1

    @pytest.mark.asyncio
    async def test_retrieval_path(self):
        outcome = await self.router.route("What wine pairs with steak?")

        assert outcome.path == RoutingPath.RETRIEVAL
        assert outcome.candidates[0].source_id == "p2"
        assert [c.source_id for c in outcome.context] == [c.source_id for c in outcome.candidates[:3]]
        assert outcome.route_confidence == 0.3

    @pytest.mark.asyncio
    async def test_decline_path(self):
        outcome = await self.router.route("Is this wine worth the money?", candidates=[])

        assert outcome.path == RoutingPath.DECLINE
        assert outcome.candidates == []
        assert outcome.retrieval_features[:6] == [0.0] * 6

    @pytest.mark.asyncio
    async def test_redirect_skips_retrieval_and_synthesis(self):
        self.retriever.retrieve = AsyncMock(return_value=[])
        self.router.synthesizer = Mock(wraps=self.router.synthesizer)
        # Rule fallback scores non_wine at 0.8 when the flag fires
        outcome = await self.router.route("How do I change a car tyre?")

        assert outcome.path == RoutingPath.REDIRECT
        assert outcome.redirect_non_wine is True
        assert outcome.intent_scores.non_wine == 0.8
        self.retriever.retrieve.assert_not_awaited()
        self.router.synthesizer.synthesize.assert_not_called()
        assert outcome.synthesis.can_answer is False

    @pytest.mark.asyncio
    async def test_caller_supplied_candidates(self):
        self.retriever.retrieve = AsyncMock(return_value=[])
        candidates = [CandidatePassage("Sangiovese grows in Tuscany.", 0.75, "given")]

        outcome = await self.router.route("What grapes are used in Tuscany of Italy?", candidates=candidates)

        self.retriever.retrieve.assert_not_awaited()
        assert outcome.candidates[0].source_id == "given"
        # can_answer and top1 > 0.7 give the high rule score
        assert outcome.route_confidence == 0.8
        assert outcome.path == RoutingPath.STRUCTURED

    @pytest.mark.asyncio
    async def test_full_structured_answer_wins_at_low_confidence(self):
        candidates = [CandidatePassage("Sangiovese grows in Tuscany.", 0.5, "given")]

        outcome = await self.router.route("What grapes are used in Tuscany of Italy?", candidates=candidates)

        assert outcome.route_confidence == 0.3
        assert len(outcome.synthesis.answer) > 50
        assert outcome.path == RoutingPath.STRUCTURED

    @pytest.mark.asyncio
    async def test_short_structured_answer_loses_to_retrieval_on_low_confidence(self):
        self.router.inference_config["structured_min_answer_length"] = 10_000
        candidates = [CandidatePassage("Sangiovese grows in Tuscany.", 0.5, "given")]

        outcome = await self.router.route("What grapes are used in Tuscany of Italy?", candidates=candidates)

        assert outcome.route_confidence == 0.3
        assert outcome.synthesis.can_answer is True
        assert outcome.path == RoutingPath.RETRIEVAL

    @pytest.mark.asyncio
    async def test_retrieval_failure_counts_as_zero_candidates(self):
        self.retriever.retrieve = AsyncMock(side_effect=RetrievalError("service down"))

        outcome = await self.router.route("What grapes are used in Tuscany of Italy?")

        assert outcome.candidates == []
        assert outcome.path == RoutingPath.STRUCTURED
        assert self.metrics.get_counter("retrieval_failures") == 1

    @pytest.mark.asyncio
    async def test_retrieval_failure_without_structured_answer_declines(self):
        self.retriever.retrieve = AsyncMock(side_effect=ConnectionError("refused"))

        outcome = await self.router.route("What wine pairs with steak?")

        assert outcome.path == RoutingPath.DECLINE

    @pytest.mark.asyncio
    async def test_no_retriever(self):
        self.router.retriever = None

        outcome = await self.router.route("What wine pairs with steak?")

        assert outcome.path == RoutingPath.DECLINE

    @pytest.mark.asyncio
    async def test_acceptance_rates_flow_into_features(self):
        outcome = await self.router.route(
            "Is this wine worth the money?", candidates=[], acceptance=AcceptanceStats(0.6, 0.4)
        )

        assert outcome.retrieval_features[-2:] == [0.6, 0.4]

    @pytest.mark.asyncio
    async def test_empty_question_rejected(self):
        with pytest.raises(ValueError):
            await self.router.route("   ")

    @pytest.mark.asyncio
    async def test_log_record_feeds_training(self):
        outcome = await self.router.route("What wine pairs with steak?")

        record = outcome.to_log_record()
        examples = build_training_examples(record, "accepted")

        assert record["path"] == "retrieval"
        assert {example.kind for example in examples} == {"intent", "route", "reranker"}

    @pytest.mark.asyncio
    async def test_timer_recorded(self):
        await self.router.route("What wine pairs with steak?")

        assert self.metrics.get_histogram_summary("route_seconds")["count"] == 1

    def test_update_dictionaries(self):
        replacement = EntityDictionaries.from_terms({"grapes": ["Merlot"]})

        self.router.update_dictionaries(replacement)

        assert self.router.dictionaries is replacement
