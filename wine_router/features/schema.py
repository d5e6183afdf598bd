"""
Feature schemas shared by extraction, training and inference.

Field order is part of the model contract: stored weights are positional,
so fields may only be appended at the end, and any change requires
retraining (bump SCHEMA_VERSION).
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

SCHEMA_VERSION = "1.0.0"

ENTITY_TYPES: List[str] = [
    "grapes",
    "appellations",
    "regions",
    "countries",
    "wines",
    "producers",
    "classifications",
]

SOURCE_CATEGORIES: List[str] = [
    "grape_guide",
    "region_guide",
    "pairing_guide",
    "producer_note",
]

QUESTION_FIELDS: List[str] = (
    ["q_length", "q_token_count", "has_year", "has_price", "has_percentage"]
    + [f"ent_{entity_type}" for entity_type in ENTITY_TYPES]
    + [
        "intent_pairing",
        "intent_region",
        "intent_grape",
        "intent_cellar",
        "intent_recommendation",
        "intent_joke",
        "intent_non_wine",
    ]
)

RETRIEVAL_FIELDS: List[str] = (
    [
        "retr_top1_score",
        "retr_mean_score",
        "retr_gap_12",
        "retr_jaccard_top1",
        "retr_lcs_top1",
        "retr_entity_hits_top1",
    ]
    + [f"src_{category}" for category in SOURCE_CATEGORIES]
    + ["accept_rate_global", "accept_rate_user"]
)

ROUTE_FIELDS: List[str] = [
    "can_answer_from_joins",
    "retrieval_confidence",
    "wants_region",
    "wants_grape",
    "chunk_quality",
]

# Per-candidate extension appended for the reranker
CANDIDATE_FIELDS: List[str] = ["chunk_length", "chunk_score"]


@dataclass(frozen=True)
class FeatureSchema:
    """Ordered field names a model's weights line up with."""
    name: str
    fields: Tuple[str, ...]
    version: str = SCHEMA_VERSION

    @property
    def size(self) -> int:
        return len(self.fields)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "fields": list(self.fields), "version": self.version}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureSchema":
        return cls(
            name=data.get("name", "unknown"),
            fields=tuple(data.get("fields") or ()),
            version=data.get("version", SCHEMA_VERSION),
        )

    @classmethod
    def positional(cls, name: str, size: int) -> "FeatureSchema":
        """Schema for vectors whose fields are only known by position."""
        return cls(name=name, fields=tuple(f"feature_{i}" for i in range(size)))

    def compatible_with(self, other: "FeatureSchema") -> bool:
        return self.fields == other.fields


QUESTION_SCHEMA = FeatureSchema("question", tuple(QUESTION_FIELDS))
RETRIEVAL_SCHEMA = FeatureSchema("retrieval", tuple(RETRIEVAL_FIELDS))
ROUTE_SCHEMA = FeatureSchema("route", tuple(ROUTE_FIELDS))

MODEL_INPUT_SCHEMAS: Dict[str, FeatureSchema] = {
    "intent": FeatureSchema("intent", tuple(QUESTION_FIELDS)),
    "reranker": FeatureSchema("reranker", tuple(QUESTION_FIELDS + RETRIEVAL_FIELDS + CANDIDATE_FIELDS)),
    "route": FeatureSchema("route", tuple(QUESTION_FIELDS + RETRIEVAL_FIELDS + ROUTE_FIELDS)),
}


def schema_for_kind(kind: str) -> FeatureSchema:
    try:
        return MODEL_INPUT_SCHEMAS[kind]
    except KeyError:
        raise ValueError(f"Unknown model kind: {kind}") from None
