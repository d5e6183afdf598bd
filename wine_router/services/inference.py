"""Inference engine: loads the active scorers once and applies them with rule fallbacks."""

import logging
import math
import threading
from typing import Any, Dict, List, Optional, Sequence

from ..adapters.base import ModelStore
from ..config.settings import get_inference_config, get_model_config
from ..features.extraction import (
    QuestionFeatures,
    RetrievalFeatures,
    RouteFeatures,
    reranker_vector,
    route_vector,
)
from ..features.schema import schema_for_kind
from ..models.core import (
    INTENT_NAMES,
    MODEL_KINDS,
    CandidatePassage,
    IntentScores,
    RerankedCandidate,
)
from ..models.linear_model import LinearModel
from ..utils.error_handling import ErrorContext, WineRouterError, get_error_handler
from ..utils.monitoring import MetricsCollector, get_metrics_collector


logger = logging.getLogger(__name__)


class InferenceEngine:
    """Holds one loaded LinearModel per kind and scores questions with them.

    The model map is filled at most once per process (or per ``reload``);
    concurrent first callers wait on the same load. Loaded models are never
    mutated, so scoring needs no locking.
    """

    def __init__(
        self,
        model_store: ModelStore,
        inference_config: Optional[Dict[str, Any]] = None,
        model_config: Optional[Dict[str, Any]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the engine without loading anything.

        Args:
            model_store: Source of artifacts and the active-version pointer
            inference_config: Overrides for the ``inference`` config section
            model_config: Overrides for the ``model`` config section
            metrics: Metrics collector (defaults to the global one)
        """
        self.model_store = model_store
        self.inference_config = {**get_inference_config(), **(inference_config or {})}
        self.model_config = {**get_model_config(), **(model_config or {})}
        fallback = self.inference_config.get("fallback") or {}
        self.fallback = {
            "intent_on": 0.8,
            "intent_off": 0.2,
            "route_top1_cutoff": 0.7,
            "route_high": 0.8,
            "route_low": 0.3,
            **fallback,
        }
        self.metrics = metrics or get_metrics_collector()
        self.error_handler = get_error_handler()

        self._models: Dict[str, LinearModel] = {}
        self._versions: Dict[str, int] = {}
        self._loaded = False
        self._load_lock = threading.Lock()

    @property
    def strict_schema(self) -> bool:
        return self.model_config.get("schema_mode", "strict") != "compatible"

    def ensure_loaded(self) -> None:
        """Load models on first use; later calls return immediately."""
        if self._loaded:
            return
        with self._load_lock:
            if not self._loaded:
                self._load_models()

    def load_models(self) -> Dict[str, int]:
        """(Re)load the active model of every kind.

        Returns:
            Mapping of kind to the version now in use
        """
        with self._load_lock:
            self._load_models()
        return dict(self._versions)

    reload = load_models

    def _load_models(self) -> None:
        models: Dict[str, LinearModel] = {}
        versions: Dict[str, int] = {}

        try:
            active_versions = self.model_store.get_active_versions()
        except WineRouterError as e:
            self.error_handler.handle_error(e, ErrorContext(component="InferenceEngine", operation="load_models"))
            active_versions = {}

        for kind in MODEL_KINDS:
            version = active_versions.get(kind)
            if version is None:
                logger.info("No active %s model; using rule fallback", kind)
                continue

            try:
                artifact = self.model_store.get_artifact(kind, version)
                if artifact is None:
                    logger.warning("Active %s model version %d not found; using rule fallback", kind, version)
                    continue
                models[kind] = LinearModel.from_artifact(
                    artifact,
                    schema_for_kind(kind),
                    strict=self.strict_schema,
                    learning_rate=float(self.model_config.get("learning_rate", 0.01)),
                    regularization=float(self.model_config.get("regularization", 0.001)),
                )
                versions[kind] = version
                logger.info("Loaded %s model version %d", kind, version)
            except WineRouterError as e:
                self.error_handler.handle_error(
                    e, ErrorContext(component="InferenceEngine", operation="load_models", kind=kind)
                )

        # Publish the complete map in one assignment
        self._models = models
        self._versions = versions
        self._loaded = True

    def get_model(self, kind: str) -> Optional[LinearModel]:
        self.ensure_loaded()
        return self._models.get(kind)

    def loaded_versions(self) -> Dict[str, int]:
        self.ensure_loaded()
        return dict(self._versions)

    def _score(self, kind: str, model: LinearModel, vector: Sequence[float]) -> Optional[float]:
        """Model score, or None when it cannot be trusted."""
        try:
            score = model.predict(vector)
        except ValueError as e:
            logger.warning("%s model could not score input (%s); using rule fallback", kind, e)
            self.metrics.increment_counter(f"inference_{kind}_errors")
            return None

        if not math.isfinite(score):
            logger.warning("%s model produced non-finite score %r; using rule fallback", kind, score)
            self.metrics.increment_counter(f"inference_{kind}_non_finite")
            return None
        return score

    def predict_intent(self, question_features: QuestionFeatures) -> IntentScores:
        """Intent profile for a question.

        Without a model, each intent scores ``intent_on`` when its rule flag
        fired and ``intent_off`` otherwise. A trained model currently yields one
        score shared by all intents.
        """
        model = self.get_model("intent")
        if model is not None:
            score = self._score("intent", model, question_features.to_vector())
            if score is not None:
                return IntentScores.uniform(score)

        self.metrics.increment_counter("inference_intent_rule_fallback")
        flags = question_features.intent_flags()
        on, off = float(self.fallback["intent_on"]), float(self.fallback["intent_off"])
        return IntentScores(**{name: on if flags[name] else off for name in INTENT_NAMES})

    def rerank_candidates(
        self,
        question: str,
        candidates: Sequence[CandidatePassage],
        question_features: QuestionFeatures,
        retrieval_features: RetrievalFeatures,
    ) -> List[RerankedCandidate]:
        """Reorder candidates by reranker score, keeping each original score.

        Without a reranker (or if any score is unusable) the candidates come
        back in their original order with ``score == original_score``.
        """
        passthrough = [RerankedCandidate.passthrough(candidate) for candidate in candidates]
        model = self.get_model("reranker")
        if model is None or not candidates:
            return passthrough

        reranked = []
        for candidate in candidates:
            score = self._score(
                "reranker", model, reranker_vector(question_features, retrieval_features, candidate)
            )
            if score is None:
                return passthrough
            reranked.append(
                RerankedCandidate(
                    text=candidate.text,
                    score=score,
                    original_score=candidate.score,
                    source_id=candidate.source_id,
                )
            )

        reranked.sort(key=lambda candidate: candidate.score, reverse=True)
        logger.debug("Reranked %d candidates for question %r", len(reranked), question)
        return reranked

    def rule_route_score(self, retrieval_features: RetrievalFeatures, route_features: RouteFeatures) -> float:
        if route_features.can_answer_from_joins and retrieval_features.retr_top1_score > self.fallback["route_top1_cutoff"]:
            return float(self.fallback["route_high"])
        return float(self.fallback["route_low"])

    def predict_route(
        self,
        question_features: QuestionFeatures,
        retrieval_features: RetrievalFeatures,
        route_features: RouteFeatures,
    ) -> float:
        """Routing confidence in [0, 1]; never NaN or infinite."""
        model = self.get_model("route")
        if model is not None:
            score = self._score(
                "route", model, route_vector(question_features, retrieval_features, route_features)
            )
            if score is not None:
                return score

        self.metrics.increment_counter("inference_route_rule_fallback")
        return self.rule_route_score(retrieval_features, route_features)

    def should_redirect_non_wine(self, intent_scores: IntentScores, threshold: Optional[float] = None) -> bool:
        """True only when the non-wine score strictly exceeds the threshold."""
        if threshold is None:
            threshold = float(self.inference_config.get("non_wine_threshold", 0.7))
        return intent_scores.non_wine > threshold

    def get_status(self) -> Dict[str, Any]:
        self.ensure_loaded()
        return {
            "schema_mode": "strict" if self.strict_schema else "compatible",
            "loaded_versions": dict(self._versions),
            "models": {kind: model.describe() for kind, model in self._models.items()},
            "rule_fallback": [kind for kind in MODEL_KINDS if kind not in self._models],
        }
