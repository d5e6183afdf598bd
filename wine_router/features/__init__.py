"""Feature extraction package."""

from .dictionaries import EntityDictionaries
from .extraction import (
    QuestionFeatures,
    RetrievalFeatures,
    RouteFeatures,
    extract_question_features,
    extract_retrieval_features,
    extract_route_features,
    reranker_vector,
    route_vector,
)
from .schema import FeatureSchema, MODEL_INPUT_SCHEMAS, schema_for_kind
from .sources import KeywordSourceClassifier

__all__ = [
    "EntityDictionaries",
    "QuestionFeatures",
    "RetrievalFeatures",
    "RouteFeatures",
    "extract_question_features",
    "extract_retrieval_features",
    "extract_route_features",
    "reranker_vector",
    "route_vector",
    "FeatureSchema",
    "MODEL_INPUT_SCHEMAS",
    "schema_for_kind",
    "KeywordSourceClassifier",
]
