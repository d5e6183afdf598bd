"""Training pipeline for the intent, reranker and route scorers."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from sklearn.metrics import accuracy_score, f1_score, precision_score, recall_score, roc_auc_score

from ..adapters.base import ExampleStore, ModelStore
from ..config.settings import get_model_config, get_training_config
from ..features.schema import FeatureSchema, schema_for_kind
from ..models.core import MODEL_KINDS, ModelArtifact, TrainingExample
from ..models.linear_model import LinearModel
from ..utils.error_handling import (
    ErrorContext,
    InsufficientTrainingDataError,
    ModelStoreError,
    WineRouterError,
    get_error_handler,
)


logger = logging.getLogger(__name__)

# Moderation decision -> training label
DECISION_QUALITY = {
    "accepted": 0.9,
    "edited": 0.7,
    "rejected": 0.1,
}
NEUTRAL_QUALITY = 0.5


@dataclass
class TrainingResult:
    """Outcome of fitting one model kind, before it is persisted."""
    kind: str
    model: LinearModel
    metrics: Dict[str, float]
    schema: FeatureSchema
    validation: Dict[str, Any] = field(default_factory=dict)

    @property
    def weights(self) -> Dict[str, float]:
        return self.model.get_weights()


class ModelTrainingPipeline:
    """Fits LinearModels from stored examples and manages artifact versions."""

    def __init__(
        self,
        model_store: ModelStore,
        example_store: ExampleStore,
        training_config: Optional[Dict[str, Any]] = None,
        model_config: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the training pipeline.

        Args:
            model_store: Where artifacts and the active-version pointer live
            example_store: Source of labeled examples
            training_config: Overrides for the ``training`` config section
            model_config: Overrides for the ``model`` config section
        """
        self.model_store = model_store
        self.example_store = example_store
        self.training_config = {**get_training_config(), **(training_config or {})}
        self.model_config = {**get_model_config(), **(model_config or {})}
        self.error_handler = get_error_handler()

    @property
    def min_examples(self) -> int:
        return int(self.training_config.get("min_examples", 10))

    def validate_training_data(self, training_data: Sequence[TrainingExample]) -> Dict[str, Any]:
        """Check examples for a consistent feature width and usable values.

        The first example fixes the expected width.

        Returns:
            Dictionary with ``is_valid``, ``statistics``, ``valid_examples``
            and up to ten ``invalid_reasons``
        """
        if not training_data:
            return {
                "is_valid": False,
                "error": "Training data is empty",
                "statistics": {"total_examples": 0, "valid_examples": 0, "invalid_examples": 0},
                "valid_examples": [],
                "invalid_reasons": [],
            }

        feature_count = len(training_data[0].features)
        valid: List[TrainingExample] = []
        invalid_reasons: List[str] = []

        for i, example in enumerate(training_data):
            if len(example.features) != feature_count:
                invalid_reasons.append(
                    f"Example {i}: {len(example.features)} features, expected {feature_count}"
                )
                continue
            if not all(math.isfinite(value) for value in example.features):
                invalid_reasons.append(f"Example {i}: non-finite feature value")
                continue
            if not (math.isfinite(example.label) and 0.0 <= example.label <= 1.0):
                invalid_reasons.append(f"Example {i}: label {example.label} outside [0, 1]")
                continue
            valid.append(example)

        threshold = self.training_config.get("decision_threshold", 0.5)
        positives = sum(1 for example in valid if example.label > threshold)
        statistics = {
            "total_examples": len(training_data),
            "valid_examples": len(valid),
            "invalid_examples": len(training_data) - len(valid),
            "feature_count": feature_count,
            "positive_rate": positives / len(valid) if valid else 0.0,
        }

        if invalid_reasons:
            logger.warning(
                "Dropped %d of %d training examples with inconsistent data",
                len(invalid_reasons), len(training_data),
            )

        return {
            "is_valid": len(valid) >= self.min_examples,
            "error": None if len(valid) >= self.min_examples else "Insufficient valid examples",
            "statistics": statistics,
            "valid_examples": valid,
            "invalid_reasons": invalid_reasons[:10],
        }

    def train_model(self, kind: str) -> TrainingResult:
        """Load examples for one kind, fit a model and evaluate it on the training set.

        Raises:
            InsufficientTrainingDataError: If fewer than ``min_examples`` usable examples exist
        """
        max_examples = int(self.training_config.get("max_examples", 1000))
        examples = self.example_store.load_examples(kind, limit=max_examples)
        logger.info("Loaded %d %s training examples", len(examples), kind)

        validation = self.validate_training_data(examples)
        valid = validation["valid_examples"]
        if len(valid) < self.min_examples:
            raise InsufficientTrainingDataError(kind, len(valid), self.min_examples)

        feature_count = validation["statistics"]["feature_count"]
        schema = schema_for_kind(kind)
        if schema.size != feature_count:
            logger.warning(
                "%s examples have %d features but the current schema has %d; storing a positional schema",
                kind, feature_count, schema.size,
            )
            schema = FeatureSchema.positional(kind, feature_count)

        model = LinearModel(
            schema,
            learning_rate=float(self.model_config.get("learning_rate", 0.01)),
            regularization=float(self.model_config.get("regularization", 0.001)),
        )
        epochs = int(self.training_config.get("epochs", 100))
        model.train(valid, epochs=epochs)

        metrics = self.evaluate_model(model, valid)
        logger.info(
            "Trained %s model on %d examples (%d epochs): accuracy=%.3f",
            kind, len(valid), epochs, metrics["accuracy"],
        )

        validation = {key: value for key, value in validation.items() if key != "valid_examples"}
        return TrainingResult(kind=kind, model=model, metrics=metrics, schema=schema, validation=validation)

    def evaluate_model(self, model: LinearModel, examples: Sequence[TrainingExample]) -> Dict[str, float]:
        """Training-set metrics at the configured decision threshold."""
        threshold = float(self.training_config.get("decision_threshold", 0.5))
        predictions = np.nan_to_num(
            model.predict_many([example.features for example in examples]), nan=threshold
        )
        y_true = np.array([example.label > threshold for example in examples], dtype=int)
        y_pred = (predictions > threshold).astype(int)

        metrics = {
            "accuracy": float(accuracy_score(y_true, y_pred)),
            "precision": float(precision_score(y_true, y_pred, zero_division=0)),
            "recall": float(recall_score(y_true, y_pred, zero_division=0)),
            "f1": float(f1_score(y_true, y_pred, zero_division=0)),
            "example_count": float(len(examples)),
            "feature_count": float(model.size),
        }
        # AUC is undefined with a single class
        if len(set(y_true.tolist())) == 2:
            metrics["auc"] = float(roc_auc_score(y_true, predictions))
        return metrics

    def save_model(self, result: TrainingResult, created_by: Optional[str] = None) -> ModelArtifact:
        """Persist a trained model as the next version of its kind.

        Version numbers come from the store's current maximum, so concurrent
        writers must be serialized by the caller.
        """
        artifact = ModelArtifact(
            kind=result.kind,
            version=self.model_store.latest_version(result.kind) + 1,
            weights=result.weights,
            features_schema=result.schema.to_dict(),
            metrics=dict(result.metrics),
            created_at=datetime.now(),
            created_by=created_by or self.training_config.get("created_by", "retrain"),
        )
        self.model_store.insert_artifact(artifact)
        logger.info("Saved %s model version %d", artifact.kind, artifact.version)
        return artifact

    def update_active_model_versions(self) -> Dict[str, int]:
        """Point each kind at its most recently created artifact."""
        latest: Dict[str, int] = {}
        for artifact in self.model_store.list_artifacts():
            # Creation order: later artifacts overwrite earlier ones
            latest[artifact.kind] = artifact.version

        if latest:
            self.model_store.set_active_versions(latest)
        logger.info("Active model versions updated: %s", latest)
        return latest

    def promote(self, kind: str, version: int) -> Dict[str, int]:
        """Explicitly activate a stored version, e.g. to roll back.

        Raises:
            ModelStoreError: If the artifact does not exist
        """
        if self.model_store.get_artifact(kind, version) is None:
            raise ModelStoreError(f"No {kind} model with version {version}")
        self.model_store.set_active_versions({kind: version})
        logger.info("Promoted %s model version %d", kind, version)
        return self.model_store.get_active_versions()

    def retrain_all(self, kinds: Optional[Sequence[str]] = None, created_by: Optional[str] = None) -> Dict[str, Any]:
        """Train and save every kind, skipping kinds that fail, then refresh active versions."""
        kinds = list(kinds or self.training_config.get("kinds") or MODEL_KINDS)
        results: Dict[str, Dict[str, Any]] = {}

        for kind in kinds:
            try:
                result = self.train_model(kind)
                artifact = self.save_model(result, created_by=created_by)
                results[kind] = {
                    "status": "trained",
                    "version": artifact.version,
                    "metrics": artifact.metrics,
                }
            except WineRouterError as e:
                response = self.error_handler.handle_error(
                    e, ErrorContext(component="ModelTrainingPipeline", operation="retrain_all", kind=kind)
                )
                results[kind] = {"status": "skipped", "error": response.message, "error_code": response.error_code}

        active_versions = self.update_active_model_versions()
        trained = [kind for kind, outcome in results.items() if outcome["status"] == "trained"]
        logger.info("Retrain finished: %d of %d kinds trained", len(trained), len(kinds))

        return {"results": results, "active_versions": active_versions}


def decision_quality(decision: Optional[str]) -> float:
    return DECISION_QUALITY.get((decision or "").lower(), NEUTRAL_QUALITY)


def build_training_examples(record: Dict[str, Any], decision: Optional[str], edited: bool = False) -> List[TrainingExample]:
    """Turn a logged routing record plus a moderation decision into one example per kind.

    Args:
        record: Output of ``RoutingOutcome.to_log_record()``
        decision: Moderation decision (accepted, edited, rejected, ...)
        edited: Whether the moderator rewrote the answer

    Returns:
        Intent and route examples, plus a reranker example when the record had candidates
    """
    label = decision_quality(decision)
    meta = {
        "decision": decision,
        "has_edit": int(edited),
        "question": record.get("question"),
        "path": record.get("path"),
    }
    question_features = [float(value) for value in record["question_features"]]
    retrieval_features = [float(value) for value in record["retrieval_features"]]
    route_features = [float(value) for value in record["route_features"]]

    examples = [
        TrainingExample(kind="intent", features=question_features, label=label, meta=dict(meta)),
        TrainingExample(
            kind="route",
            features=question_features + retrieval_features + route_features,
            label=label,
            meta=dict(meta),
        ),
    ]

    candidates = record.get("candidates") or []
    if candidates:
        top = candidates[0]
        examples.append(
            TrainingExample(
                kind="reranker",
                features=question_features
                + retrieval_features
                + [float(len(top["text"])), float(top["original_score"])],
                label=label,
                meta={**meta, "source_id": top.get("source_id")},
            )
        )
    return examples
