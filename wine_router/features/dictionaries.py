"""Entity dictionaries used for substring matching during feature extraction."""

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, FrozenSet, Iterable, Mapping

if TYPE_CHECKING:
    from ..adapters.base import KnowledgeGraph


def _normalize(terms: Iterable[str]) -> FrozenSet[str]:
    # Empty terms would match every question
    return frozenset(term.strip().lower() for term in terms if term and term.strip())


@dataclass(frozen=True)
class EntityDictionaries:
    """Immutable sets of lowercase domain terms, one per entity type.

    Callers refresh these on their own schedule by building a new instance;
    a single instance is never mutated while requests use it.
    """

    grapes: FrozenSet[str] = frozenset()
    appellations: FrozenSet[str] = frozenset()
    regions: FrozenSet[str] = frozenset()
    countries: FrozenSet[str] = frozenset()
    wines: FrozenSet[str] = frozenset()
    producers: FrozenSet[str] = frozenset()
    classifications: FrozenSet[str] = frozenset()

    @classmethod
    def from_terms(cls, terms: Mapping[str, Iterable[str]]) -> "EntityDictionaries":
        known = {f.name for f in fields(cls)}
        unknown = set(terms) - known
        if unknown:
            raise ValueError(f"Unknown entity types: {sorted(unknown)}")
        return cls(**{name: _normalize(values) for name, values in terms.items()})

    @classmethod
    def from_knowledge_graph(cls, graph: "KnowledgeGraph") -> "EntityDictionaries":
        return cls.from_terms(
            {f.name: graph.list_entity_names(f.name) for f in fields(cls)}
        )

    def terms(self, entity_type: str) -> FrozenSet[str]:
        return getattr(self, entity_type)

    def count_matches(self, entity_type: str, lowered_text: str) -> int:
        """Number of terms of one type occurring as substrings of already-lowercased text."""
        return sum(1 for term in self.terms(entity_type) if term in lowered_text)

    def count_all_matches(self, lowered_text: str) -> int:
        return sum(self.count_matches(f.name, lowered_text) for f in fields(self))

    def size(self) -> int:
        return sum(len(self.terms(f.name)) for f in fields(self))
