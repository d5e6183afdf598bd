"""Logistic linear scorer trained by per-example gradient descent."""

import logging
import math
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from ..features.schema import FeatureSchema
from ..utils.error_handling import ModelSchemaMismatchError
from .core import ModelArtifact, TrainingExample


logger = logging.getLogger(__name__)

# Keeps predictions strictly inside (0, 1) once float rounding saturates the sigmoid
PROBABILITY_EPSILON = 1e-12


def _sigmoid(z: float) -> float:
    if z >= 0:
        value = 1.0 / (1.0 + math.exp(-z))
    else:
        exp_z = math.exp(z)
        value = exp_z / (1.0 + exp_z)
    return min(max(value, PROBABILITY_EPSILON), 1.0 - PROBABILITY_EPSILON)


class LinearModel:
    """Fixed-width logistic model: sigmoid(w . x + b).

    Weights live in a numpy array aligned with ``schema.fields``; the named
    ``feature_<i>`` map is only the storage format.
    """

    def __init__(
        self,
        schema: FeatureSchema,
        learning_rate: float = 0.01,
        regularization: float = 0.001,
    ):
        """Initialize a zero-weight model.

        Args:
            schema: Ordered feature fields the weights line up with
            learning_rate: Gradient descent step size
            regularization: L2 weight decay coefficient
        """
        self.schema = schema
        self.learning_rate = learning_rate
        self.regularization = regularization
        self.weights = np.zeros(schema.size, dtype=np.float64)
        self.bias = 0.0

    @property
    def size(self) -> int:
        return self.schema.size

    def _as_input(self, features: Sequence[float]) -> np.ndarray:
        x = np.asarray(features, dtype=np.float64)
        if x.shape != (self.size,):
            raise ValueError(
                f"Expected {self.size} features for schema '{self.schema.name}', got {x.shape[0] if x.ndim else 0}"
            )
        return x

    def predict(self, features: Sequence[float]) -> float:
        """Probability in (0, 1) for finite inputs; NaN when the dot product is not finite."""
        x = self._as_input(features)
        with np.errstate(over="ignore", invalid="ignore"):
            z = float(np.dot(self.weights, x) + self.bias)
        if not math.isfinite(z):
            return float("nan")
        return _sigmoid(z)

    def predict_many(self, rows: Sequence[Sequence[float]]) -> np.ndarray:
        return np.array([self.predict(row) for row in rows], dtype=np.float64)

    def train(self, examples: Sequence[TrainingExample], epochs: int = 100) -> "LinearModel":
        """Stochastic gradient descent with L2 decay, in example order, no shuffling.

        Args:
            examples: Labeled examples whose feature length matches the schema
            epochs: Number of passes over the examples

        Returns:
            self, for chaining
        """
        rows = [(self._as_input(example.features), float(example.label)) for example in examples]
        lr, reg = self.learning_rate, self.regularization

        for epoch in range(epochs):
            for x, label in rows:
                error = label - self.predict(x)
                self.weights += lr * (error * x - reg * self.weights)
                self.bias += lr * error

            if logger.isEnabledFor(logging.DEBUG) and (epoch + 1) % 25 == 0:
                logger.debug("Epoch %d/%d for schema %s", epoch + 1, epochs, self.schema.name)

        return self

    def get_weights(self) -> Dict[str, float]:
        weights = {f"feature_{i}": float(value) for i, value in enumerate(self.weights)}
        weights["bias"] = float(self.bias)
        return weights

    def set_weights(self, weights: Mapping[str, float], strict: bool = True) -> None:
        """Load a ``feature_<i>``/``bias`` map.

        In strict mode the keys must match the schema width exactly. Otherwise
        missing weights are zero-filled and unknown keys ignored.

        Raises:
            ModelSchemaMismatchError: On missing, extra or non-numeric weights in strict mode
        """
        expected = {f"feature_{i}" for i in range(self.size)} | {"bias"}
        if strict:
            missing = expected - set(weights)
            extra = set(weights) - expected
            if missing or extra:
                raise ModelSchemaMismatchError(
                    f"Weights do not fit schema '{self.schema.name}' ({self.size} features): "
                    f"{len(missing)} missing, {len(extra)} unexpected"
                )

        values = np.zeros(self.size, dtype=np.float64)
        for i in range(self.size):
            values[i] = self._coerce(weights.get(f"feature_{i}", 0.0), f"feature_{i}")
        self.weights = values
        self.bias = self._coerce(weights.get("bias", 0.0), "bias")

    @staticmethod
    def _coerce(value, key: str) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ModelSchemaMismatchError(f"Weight '{key}' is not numeric: {value!r}") from None

    @classmethod
    def from_artifact(
        cls,
        artifact: ModelArtifact,
        schema: FeatureSchema,
        strict: bool = True,
        learning_rate: float = 0.01,
        regularization: float = 0.001,
    ) -> "LinearModel":
        """Build a model for the running schema from a stored artifact.

        Raises:
            ModelSchemaMismatchError: In strict mode, when the stored schema's fields differ
        """
        if strict:
            stored: Optional[FeatureSchema] = None
            if artifact.features_schema.get("fields"):
                stored = FeatureSchema.from_dict(artifact.features_schema)
            if stored is None or not stored.compatible_with(schema):
                raise ModelSchemaMismatchError(
                    f"Artifact {artifact.kind} v{artifact.version} was trained on a different feature schema"
                )

        model = cls(schema, learning_rate=learning_rate, regularization=regularization)
        model.set_weights(artifact.weights, strict=strict)
        return model

    def describe(self) -> Dict[str, object]:
        return {
            "schema": self.schema.name,
            "features": self.size,
            "bias": float(self.bias),
            "weight_norm": float(np.linalg.norm(self.weights)),
        }
