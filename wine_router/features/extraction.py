"""Deterministic feature extraction for questions, retrieval results and routing.

All functions here are pure: no I/O, inputs are never mutated and identical
inputs always give identical vectors, so training and inference see the
same numbers.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Pattern, Sequence, Tuple

from ..models.core import AcceptanceStats, CandidatePassage
from .dictionaries import EntityDictionaries
from .schema import (
    ENTITY_TYPES,
    QUESTION_FIELDS,
    RETRIEVAL_FIELDS,
    ROUTE_FIELDS,
    SOURCE_CATEGORIES,
)
from .sources import SourceClassifier, default_source_classifier

YEAR_PATTERN = re.compile(r"\b\d{4}\b")
PRICE_PATTERN = re.compile(
    r"[$€£]\s?\d+(?:[.,]\d+)?|\b\d+(?:[.,]\d+)?\s?(?:\$|€|£|dollars?|euros?|pounds?|usd|eur|gbp)\b"
)
PERCENT_PATTERN = re.compile(r"\b\d+(?:[.,]\d+)?\s?(?:%|percent\b|per cent\b)")
WORD_PATTERN = re.compile(r"\w+")

WINE_KEYWORDS: Tuple[str, ...] = (
    "wine", "grape", "vineyard", "vintage", "bottle", "cellar", "sommelier",
    "tannin", "acidity", "bouquet", "aroma", "terroir", "appellation",
    "fermentation", "oak", "sparkling", "champagne", "prosecco", "sherry",
    "rosé", "varietal", "winery", "decant", "vino",
)


@dataclass(frozen=True)
class IntentDetector:
    """Keyword-or-pattern test for one intent flag."""
    name: str
    keywords: Tuple[str, ...] = ()
    patterns: Tuple[Pattern, ...] = ()

    def detect(self, lowered: str, entity_counts: Mapping[str, int]) -> bool:
        if any(keyword in lowered for keyword in self.keywords):
            return True
        return any(pattern.search(lowered) for pattern in self.patterns)


@dataclass(frozen=True)
class NonDomainDetector(IntentDetector):
    """Fires when nothing in the question looks like wine talk."""

    def detect(self, lowered: str, entity_counts: Mapping[str, int]) -> bool:
        if sum(entity_counts.values()) > 0:
            return False
        return not any(keyword in lowered for keyword in self.keywords)


PAIRING_DETECTOR = IntentDetector(
    "pairing",
    keywords=("pair", "go well", "goes well", "goes with", "go with", "match", "food",
              "cheese", "dinner", "steak", "seafood", "pasta", "dessert"),
    patterns=(re.compile(r"\b(?:with|alongside) (?:my |a |the )?(?:meal|dish|fish|chicken|lamb|pork|beef)\b"),),
)
REGION_DETECTOR = IntentDetector(
    "region",
    keywords=("region", "appellation", "terroir", "country", "where is", "where does", "where do"),
    patterns=(re.compile(r"\bwines? (?:from|of|in) \w+"),),
)
GRAPE_DETECTOR = IntentDetector(
    "grape",
    keywords=("grape", "varietal", "variety", "varieties", "blend", "made from"),
)
CELLAR_DETECTOR = IntentDetector(
    "cellar",
    keywords=("cellar", "my collection", "drink window", "drinking window", "storage", "decant"),
    patterns=(re.compile(r"\b(?:age|aging|ageing|aged|store|storing|keep)\b"),),
)
RECOMMENDATION_DETECTOR = IntentDetector(
    "recommendation",
    keywords=("recommend", "suggest", "favorite", "favourite", "should i", "what should"),
    patterns=(re.compile(r"\b(?:best|good|top)\b"),),
)
JOKE_DETECTOR = IntentDetector(
    "joke",
    keywords=("joke", "funny", "make me laugh", "humor", "humour"),
    patterns=(re.compile(r"\bpuns?\b"),),
)
NON_WINE_DETECTOR = NonDomainDetector(
    "non_wine",
    keywords=(
        WINE_KEYWORDS
        + PAIRING_DETECTOR.keywords
        + REGION_DETECTOR.keywords
        + GRAPE_DETECTOR.keywords
        + CELLAR_DETECTOR.keywords
    ),
)

# Order matches the intent_* fields of the question schema
INTENT_DETECTORS: Tuple[IntentDetector, ...] = (
    PAIRING_DETECTOR,
    REGION_DETECTOR,
    GRAPE_DETECTOR,
    CELLAR_DETECTOR,
    RECOMMENDATION_DETECTOR,
    JOKE_DETECTOR,
    NON_WINE_DETECTOR,
)


@dataclass(frozen=True)
class QuestionFeatures:
    q_length: int
    q_token_count: int
    has_year: int
    has_price: int
    has_percentage: int
    ent_grapes: int
    ent_appellations: int
    ent_regions: int
    ent_countries: int
    ent_wines: int
    ent_producers: int
    ent_classifications: int
    intent_pairing: int
    intent_region: int
    intent_grape: int
    intent_cellar: int
    intent_recommendation: int
    intent_joke: int
    intent_non_wine: int

    def to_vector(self) -> List[float]:
        return [float(getattr(self, name)) for name in QUESTION_FIELDS]

    @classmethod
    def from_vector(cls, vector: Sequence[float]) -> "QuestionFeatures":
        _check_length("question", vector, QUESTION_FIELDS)
        return cls(**{name: int(value) for name, value in zip(QUESTION_FIELDS, vector)})

    def intent_flags(self) -> Dict[str, bool]:
        return {detector.name: bool(getattr(self, f"intent_{detector.name}")) for detector in INTENT_DETECTORS}


@dataclass(frozen=True)
class RetrievalFeatures:
    retr_top1_score: float = 0.0
    retr_mean_score: float = 0.0
    retr_gap_12: float = 0.0
    retr_jaccard_top1: float = 0.0
    retr_lcs_top1: float = 0.0
    retr_entity_hits_top1: float = 0.0
    src_grape_guide: float = 0.0
    src_region_guide: float = 0.0
    src_pairing_guide: float = 0.0
    src_producer_note: float = 0.0
    accept_rate_global: float = 0.0
    accept_rate_user: float = 0.0

    def to_vector(self) -> List[float]:
        return [float(getattr(self, name)) for name in RETRIEVAL_FIELDS]

    @classmethod
    def from_vector(cls, vector: Sequence[float]) -> "RetrievalFeatures":
        _check_length("retrieval", vector, RETRIEVAL_FIELDS)
        return cls(**{name: float(value) for name, value in zip(RETRIEVAL_FIELDS, vector)})


@dataclass(frozen=True)
class RouteFeatures:
    can_answer_from_joins: float
    retrieval_confidence: float
    wants_region: float
    wants_grape: float
    chunk_quality: float

    def to_vector(self) -> List[float]:
        return [float(getattr(self, name)) for name in ROUTE_FIELDS]

    @classmethod
    def from_vector(cls, vector: Sequence[float]) -> "RouteFeatures":
        _check_length("route", vector, ROUTE_FIELDS)
        return cls(**{name: float(value) for name, value in zip(ROUTE_FIELDS, vector)})


def _check_length(name: str, vector: Sequence[float], field_names: Sequence[str]) -> None:
    if len(vector) != len(field_names):
        raise ValueError(f"{name} vector has {len(vector)} values, schema expects {len(field_names)}")


def tokenize(text: str) -> List[str]:
    return WORD_PATTERN.findall(text.lower())


def jaccard(a: Sequence[str], b: Sequence[str]) -> float:
    set_a, set_b = set(a), set(b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def lcs_overlap(question_tokens: Sequence[str], passage_tokens: Sequence[str]) -> float:
    """Longest common token subsequence, normalized by the question length."""
    if not question_tokens or not passage_tokens:
        return 0.0
    previous = [0] * (len(passage_tokens) + 1)
    for q_token in question_tokens:
        current = [0]
        for j, p_token in enumerate(passage_tokens, start=1):
            if q_token == p_token:
                current.append(previous[j - 1] + 1)
            else:
                current.append(max(previous[j], current[j - 1]))
        previous = current
    return previous[-1] / len(question_tokens)


def extract_question_features(question: str, dictionaries: EntityDictionaries) -> QuestionFeatures:
    lowered = question.lower()
    entity_counts = {
        entity_type: dictionaries.count_matches(entity_type, lowered) for entity_type in ENTITY_TYPES
    }
    intents = {
        f"intent_{detector.name}": int(detector.detect(lowered, entity_counts))
        for detector in INTENT_DETECTORS
    }
    return QuestionFeatures(
        q_length=len(question),
        q_token_count=len(question.split()),
        has_year=int(bool(YEAR_PATTERN.search(lowered))),
        has_price=int(bool(PRICE_PATTERN.search(lowered))),
        has_percentage=int(bool(PERCENT_PATTERN.search(lowered))),
        **{f"ent_{entity_type}": count for entity_type, count in entity_counts.items()},
        **intents,
    )


def extract_retrieval_features(
    question: str,
    candidates: Sequence[CandidatePassage],
    dictionaries: EntityDictionaries,
    acceptance: Optional[AcceptanceStats] = None,
    source_classifier: SourceClassifier = default_source_classifier,
) -> RetrievalFeatures:
    """Summarize a candidate set; an empty set yields the all-zero baseline."""
    acceptance = acceptance or AcceptanceStats()
    if not candidates:
        return RetrievalFeatures(
            accept_rate_global=acceptance.global_rate,
            accept_rate_user=acceptance.user_rate,
        )

    ranked = sorted(candidates, key=lambda candidate: candidate.score, reverse=True)
    top1 = ranked[0]
    scores = [candidate.score for candidate in ranked]
    question_tokens = tokenize(question)
    top1_tokens = tokenize(top1.text)
    sources = source_classifier(top1)

    return RetrievalFeatures(
        retr_top1_score=top1.score,
        retr_mean_score=sum(scores) / len(scores),
        retr_gap_12=scores[0] - scores[1] if len(scores) > 1 else 0.0,
        retr_jaccard_top1=jaccard(question_tokens, top1_tokens),
        retr_lcs_top1=lcs_overlap(question_tokens, top1_tokens),
        retr_entity_hits_top1=float(dictionaries.count_all_matches(top1.text.lower())),
        **{f"src_{category}": float(bool(sources.get(category))) for category in SOURCE_CATEGORIES},
        accept_rate_global=acceptance.global_rate,
        accept_rate_user=acceptance.user_rate,
    )


def extract_route_features(
    question_features: QuestionFeatures,
    retrieval_features: RetrievalFeatures,
    can_answer_from_joins: bool,
) -> RouteFeatures:
    return RouteFeatures(
        can_answer_from_joins=float(can_answer_from_joins),
        retrieval_confidence=retrieval_features.retr_top1_score,
        wants_region=float(question_features.intent_region),
        wants_grape=float(question_features.intent_grape),
        chunk_quality=retrieval_features.retr_lcs_top1,
    )


def reranker_vector(
    question_features: QuestionFeatures,
    retrieval_features: RetrievalFeatures,
    candidate: CandidatePassage,
) -> List[float]:
    return (
        question_features.to_vector()
        + retrieval_features.to_vector()
        + [float(len(candidate.text)), float(candidate.score)]
    )


def route_vector(
    question_features: QuestionFeatures,
    retrieval_features: RetrievalFeatures,
    route_features: RouteFeatures,
) -> List[float]:
    return question_features.to_vector() + retrieval_features.to_vector() + route_features.to_vector()
