"""Question router: features, intent, retrieval, reranking and the answer-path decision."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..adapters.base import PassageRetriever
from ..config.settings import get_inference_config, get_retrieval_config
from ..features.dictionaries import EntityDictionaries
from ..features.extraction import (
    extract_question_features,
    extract_retrieval_features,
    extract_route_features,
)
from ..features.sources import SourceClassifier, default_source_classifier
from ..models.core import (
    AcceptanceStats,
    CandidatePassage,
    RoutingOutcome,
    RoutingPath,
    SynthesisResult,
)
from ..utils.error_handling import (
    CircuitBreaker,
    CircuitBreakerConfig,
    ErrorContext,
    get_error_handler,
)
from ..utils.monitoring import MetricsCollector, get_metrics_collector
from .inference import InferenceEngine
from .knowledge_synthesis import KnowledgeSynthesizer


logger = logging.getLogger(__name__)


class QuestionRouter:
    """Decides, per question, between structured answers, retrieved passages, redirect and decline."""

    def __init__(
        self,
        engine: InferenceEngine,
        synthesizer: KnowledgeSynthesizer,
        dictionaries: EntityDictionaries,
        retriever: Optional[PassageRetriever] = None,
        source_classifier: SourceClassifier = default_source_classifier,
        inference_config: Optional[Dict[str, Any]] = None,
        retrieval_config: Optional[Dict[str, Any]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the router.

        Args:
            engine: Inference engine holding the loaded scorers
            synthesizer: Structured-knowledge answerer
            dictionaries: Entity dictionaries for feature extraction
            retriever: Passage retrieval service; without one only caller-supplied passages are used
            source_classifier: Maps a passage to source-category flags
            inference_config: Overrides for the ``inference`` config section
            retrieval_config: Overrides for the ``retrieval`` config section
            metrics: Metrics collector (defaults to the global one)
        """
        self.engine = engine
        self.synthesizer = synthesizer
        self.dictionaries = dictionaries
        self.retriever = retriever
        self.source_classifier = source_classifier
        self.inference_config = {**get_inference_config(), **(inference_config or {})}
        self.retrieval_config = {**get_retrieval_config(), **(retrieval_config or {})}
        self.metrics = metrics or get_metrics_collector()
        self.error_handler = get_error_handler()

        breaker_config = self.retrieval_config.get("circuit_breaker") or {}
        self.circuit_breaker = self.error_handler.create_circuit_breaker(
            "passage_retrieval",
            CircuitBreakerConfig(
                failure_threshold=int(breaker_config.get("failure_threshold", 3)),
                recovery_timeout=float(breaker_config.get("recovery_timeout", 30.0)),
            ),
        )

    def update_dictionaries(self, dictionaries: EntityDictionaries) -> None:
        """Swap in refreshed dictionaries; requests in flight keep the old instance."""
        self.dictionaries = dictionaries

    async def fetch_candidates(self, question: str) -> List[CandidatePassage]:
        """Candidates from the retriever; any failure counts as zero candidates."""
        if self.retriever is None:
            return []

        try:
            return await self.circuit_breaker.call(
                self.retriever.retrieve_with_timeout,
                question,
                int(self.retrieval_config.get("limit", 6)),
                float(self.retrieval_config.get("timeout", 5.0)),
            )
        except Exception as e:
            self.error_handler.handle_error(
                e, ErrorContext(component="QuestionRouter", operation="fetch_candidates", question=question)
            )
            self.metrics.increment_counter("retrieval_failures")
            return []

    async def route(
        self,
        question: str,
        candidates: Optional[Sequence[CandidatePassage]] = None,
        acceptance: Optional[AcceptanceStats] = None,
    ) -> RoutingOutcome:
        """Route one question.

        Args:
            question: Free-text question
            candidates: Pre-fetched passages; when None the retriever is queried
            acceptance: Historical acceptance rates for the asking user

        Raises:
            ValueError: If the question is empty
        """
        if not question or not question.strip():
            raise ValueError("Question must not be empty")

        with self.metrics.timer("route_seconds"):
            outcome = await self._route(question, candidates, acceptance)

        self.metrics.increment_counter(f"route_path_{outcome.path.value}")
        logger.info(
            "Routed question to %s (confidence=%.3f, candidates=%d)",
            outcome.path.value, outcome.route_confidence, len(outcome.candidates),
        )
        return outcome

    async def _route(
        self,
        question: str,
        candidates: Optional[Sequence[CandidatePassage]],
        acceptance: Optional[AcceptanceStats],
    ) -> RoutingOutcome:
        dictionaries = self.dictionaries
        question_features = extract_question_features(question, dictionaries)
        intent_scores = self.engine.predict_intent(question_features)
        threshold = float(self.inference_config.get("non_wine_threshold", 0.7))

        if self.engine.should_redirect_non_wine(intent_scores, threshold):
            retrieval_features = extract_retrieval_features(
                question, [], dictionaries, acceptance, self.source_classifier
            )
            route_features = extract_route_features(question_features, retrieval_features, False)
            return RoutingOutcome(
                question=question,
                intent_scores=intent_scores,
                redirect_non_wine=True,
                route_confidence=self.engine.predict_route(question_features, retrieval_features, route_features),
                path=RoutingPath.REDIRECT,
                question_features=question_features.to_vector(),
                retrieval_features=retrieval_features.to_vector(),
                route_features=route_features.to_vector(),
            )

        if candidates is None:
            candidates = await self.fetch_candidates(question)
        candidates = list(candidates)

        retrieval_features = extract_retrieval_features(
            question, candidates, dictionaries, acceptance, self.source_classifier
        )
        reranked = self.engine.rerank_candidates(question, candidates, question_features, retrieval_features)
        synthesis: SynthesisResult = self.synthesizer.synthesize(question)
        route_features = extract_route_features(question_features, retrieval_features, synthesis.can_answer)
        route_confidence = self.engine.predict_route(question_features, retrieval_features, route_features)

        structured_threshold = float(self.inference_config.get("structured_route_threshold", 0.3))
        min_answer_length = int(self.inference_config.get("structured_min_answer_length", 50))
        if synthesis.can_answer and (
            route_confidence > structured_threshold
            or len(synthesis.answer) > min_answer_length
            or not reranked
        ):
            path = RoutingPath.STRUCTURED
        elif reranked:
            path = RoutingPath.RETRIEVAL
        else:
            path = RoutingPath.DECLINE

        context_size = int(self.inference_config.get("context_passages", 3))
        return RoutingOutcome(
            question=question,
            intent_scores=intent_scores,
            redirect_non_wine=False,
            route_confidence=route_confidence,
            path=path,
            candidates=reranked,
            synthesis=synthesis,
            context=reranked[:context_size] if path == RoutingPath.RETRIEVAL else [],
            question_features=question_features.to_vector(),
            retrieval_features=retrieval_features.to_vector(),
            route_features=route_features.to_vector(),
        )
