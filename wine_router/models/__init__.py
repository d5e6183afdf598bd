# Data models package

from .core import (
    CandidatePassage,
    RerankedCandidate,
    TrainingExample,
    ModelArtifact,
    IntentScores,
    AcceptanceStats,
    SynthesisResult,
    RoutingOutcome,
    RoutingPath,
    ModelKind,
    MODEL_KINDS,
)
from .linear_model import LinearModel

__all__ = [
    "CandidatePassage",
    "RerankedCandidate",
    "TrainingExample",
    "ModelArtifact",
    "IntentScores",
    "AcceptanceStats",
    "SynthesisResult",
    "RoutingOutcome",
    "RoutingPath",
    "ModelKind",
    "MODEL_KINDS",
    "LinearModel",
]
