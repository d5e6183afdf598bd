"""Source-category classification for retrieved passages."""

from typing import Callable, Dict, Mapping, Sequence

from ..models.core import CandidatePassage
from .schema import SOURCE_CATEGORIES

SourceClassifier = Callable[[CandidatePassage], Mapping[str, bool]]


DEFAULT_CATEGORY_KEYWORDS: Dict[str, Sequence[str]] = {
    "grape_guide": ("grape", "varietal", "variety", "clone", "skin", "berries"),
    "region_guide": ("region", "appellation", "terroir", "climate", "soil", "denominazione"),
    "pairing_guide": ("pair", "pairing", "serve with", "food", "dish", "cheese"),
    "producer_note": ("producer", "winery", "estate", "chateau", "château", "domaine", "cantina"),
}


class KeywordSourceClassifier:
    """Infers source categories from keywords in the passage text.

    Stand-in until passages carry real source metadata; any callable with the
    same signature can replace it without changing the feature layout.
    """

    def __init__(self, category_keywords: Mapping[str, Sequence[str]] = None):
        self.category_keywords = dict(category_keywords or DEFAULT_CATEGORY_KEYWORDS)
        missing = set(SOURCE_CATEGORIES) - set(self.category_keywords)
        if missing:
            raise ValueError(f"Missing keywords for source categories: {sorted(missing)}")

    def __call__(self, candidate: CandidatePassage) -> Dict[str, bool]:
        text = candidate.text.lower()
        return {
            category: any(keyword in text for keyword in self.category_keywords[category])
            for category in SOURCE_CATEGORIES
        }


default_source_classifier = KeywordSourceClassifier()
