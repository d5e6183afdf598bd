"""Core data models for the wine question router."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ModelKind(str, Enum):
    """The three trainable scorers."""
    INTENT = "intent"
    RERANKER = "reranker"
    ROUTE = "route"


MODEL_KINDS = [kind.value for kind in ModelKind]


class RoutingPath(str, Enum):
    """Where the answer for a question comes from."""
    STRUCTURED = "structured"
    RETRIEVAL = "retrieval"
    REDIRECT = "redirect"
    DECLINE = "decline"


INTENT_NAMES = [
    "pairing",
    "region",
    "grape",
    "cellar",
    "recommendation",
    "joke",
    "non_wine",
]


@dataclass
class CandidatePassage:
    """Passage returned by the retrieval service."""
    text: str
    score: float
    source_id: Optional[str] = None


@dataclass
class RerankedCandidate:
    """Candidate passage with its reranked score; the retrieval score is kept alongside."""
    text: str
    score: float
    original_score: float
    source_id: Optional[str] = None

    @classmethod
    def passthrough(cls, candidate: CandidatePassage) -> "RerankedCandidate":
        return cls(
            text=candidate.text,
            score=candidate.score,
            original_score=candidate.score,
            source_id=candidate.source_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "score": self.score,
            "original_score": self.original_score,
            "source_id": self.source_id,
        }


@dataclass
class TrainingExample:
    """Labeled feature vector for one model kind."""
    kind: str
    features: List[float]
    label: float
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "features": list(self.features),
            "label": self.label,
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingExample":
        return cls(
            kind=data["kind"],
            features=[float(value) for value in data["features"]],
            label=float(data["label"]),
            meta=data.get("meta") or {},
        )


@dataclass
class ModelArtifact:
    """Immutable trained model record; activation is tracked separately."""
    kind: str
    version: int
    weights: Dict[str, float]
    features_schema: Dict[str, Any]
    metrics: Dict[str, float]
    created_at: datetime = field(default_factory=datetime.now)
    created_by: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "version": self.version,
            "weights": dict(self.weights),
            "features_schema": self.features_schema,
            "metrics": dict(self.metrics),
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelArtifact":
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            kind=data["kind"],
            version=int(data["version"]),
            weights={key: float(value) for key, value in data["weights"].items()},
            features_schema=data.get("features_schema") or {},
            metrics=data.get("metrics") or {},
            created_at=created_at or datetime.now(),
            created_by=data.get("created_by", "unknown"),
        )


@dataclass
class IntentScores:
    """Per-intent probabilities."""
    pairing: float
    region: float
    grape: float
    cellar: float
    recommendation: float
    joke: float
    non_wine: float

    @classmethod
    def uniform(cls, score: float) -> "IntentScores":
        return cls(**{name: score for name in INTENT_NAMES})

    def as_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in INTENT_NAMES}


@dataclass
class AcceptanceStats:
    """Historical answer acceptance rates supplied by the caller."""
    global_rate: float = 0.0
    user_rate: float = 0.0


@dataclass
class SynthesisResult:
    """Result of the structured-knowledge answer attempt."""
    answer: str
    can_answer: bool
    shape: Optional[str] = None

    @classmethod
    def no_answer(cls) -> "SynthesisResult":
        return cls(answer="", can_answer=False)


@dataclass
class RoutingOutcome:
    """Everything the routing engine decided for one question."""
    question: str
    intent_scores: IntentScores
    redirect_non_wine: bool
    route_confidence: float
    path: RoutingPath
    candidates: List[RerankedCandidate] = field(default_factory=list)
    synthesis: SynthesisResult = field(default_factory=SynthesisResult.no_answer)
    context: List[RerankedCandidate] = field(default_factory=list)
    question_features: List[float] = field(default_factory=list)
    retrieval_features: List[float] = field(default_factory=list)
    route_features: List[float] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_log_record(self) -> Dict[str, Any]:
        """Serializable record the caller can store to build future training examples."""
        return {
            "question": self.question,
            "intent_scores": self.intent_scores.as_dict(),
            "redirect_non_wine": self.redirect_non_wine,
            "route_confidence": self.route_confidence,
            "path": self.path.value,
            "can_answer_from_joins": self.synthesis.can_answer,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "question_features": list(self.question_features),
            "retrieval_features": list(self.retrieval_features),
            "route_features": list(self.route_features),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class RegionRecord:
    region_id: int
    region_name: str
    country_name: str


@dataclass
class AppellationRecord:
    appellation_id: int
    appellation: str
    region_id: int


@dataclass
class GrapeRecord:
    grape_id: int
    grape_variety: str
    wine_color: str = ""
    flavor: Optional[str] = None
    notable_wines: Optional[str] = None


@dataclass
class GrapeUsage:
    """A grape together with the appellations it is used in."""
    grape: GrapeRecord
    appellations: List[str] = field(default_factory=list)


@dataclass
class WineRecord:
    wine_name: str
    producer: str
    appellation_id: int
    color: str = ""
    vintage: Optional[str] = None
    classification: Optional[str] = None
