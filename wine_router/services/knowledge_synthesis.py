"""Deterministic answers from the relational knowledge graph.

Questions are matched against an ordered list of known shapes. The first
shape that matches AND finds rows in the graph answers; a shape that matches
but finds nothing falls through to the next one. No learned model is
involved here.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Pattern, Sequence

from ..adapters.base import KnowledgeGraph
from ..models.core import GrapeUsage, RegionRecord, SynthesisResult, WineRecord


logger = logging.getLogger(__name__)

_PLACE_PREFIX = r"(?:the\s+)?(?:region\s+of\s+)?"
_REGION_OF_COUNTRY = (
    _PLACE_PREFIX + r"(?P<region>[^,]+?)(?:\s*,\s*|\s+(?:of|in)\s+)(?:the\s+)?(?P<country>[^,]+)$"
)
_GRAPE_LEAD = r"\bgrape(?:s|\s+variet(?:y|ies))?\b.*?\b(?:in|from)\s+"
_WINE_LEAD = r"\bwines?\b.*?\b(?:from|in|of)\s+"

COLOR_GROUPS = ("red", "white")


def normalize_question(question: str) -> str:
    lowered = " ".join(question.lower().split())
    return lowered.rstrip("?.! ")


def group_by_color(items: Sequence, color_of) -> Dict[str, List]:
    """Split items into red, white and other by a colour attribute."""
    groups: Dict[str, List] = {"red": [], "white": [], "other": []}
    for item in items:
        color = (color_of(item) or "").lower()
        key = next((group for group in COLOR_GROUPS if group in color), "other")
        groups[key].append(item)
    return groups


def describe_location(regions: Sequence[RegionRecord], separator: str = ", ") -> str:
    names = sorted({region.region_name for region in regions})
    countries = sorted({region.country_name for region in regions})
    place = " / ".join(names)
    if len(countries) == 1:
        return f"{place}{separator}{countries[0]}"
    return place


def format_grape_answer(usages: Sequence[GrapeUsage], location: str) -> str:
    answer = f"Here are the grape varieties commonly used in {location}:\n\n"
    groups = group_by_color(usages, lambda usage: usage.grape.wine_color)
    for key, title in (("red", "Red"), ("white", "White"), ("other", "Other")):
        if not groups[key]:
            continue
        answer += f"**{title} Grapes:**\n"
        for usage in sorted(groups[key], key=lambda usage: usage.grape.grape_variety):
            grape = usage.grape
            answer += f"• **{grape.grape_variety}** ({grape.wine_color or 'unknown'})\n"
            if grape.flavor:
                answer += f"  Flavor: {grape.flavor}\n"
            if usage.appellations:
                answer += f"  Used in: {', '.join(usage.appellations)}\n"
            answer += "\n"
    return answer


def format_wine_answer(wines: Sequence[WineRecord], location: str) -> str:
    answer = f"Here are some wines from {location}:\n\n"
    groups = group_by_color(wines, lambda wine: wine.color)
    for key, title in (("red", "Red"), ("white", "White"), ("other", "Other")):
        if groups[key]:
            names = ", ".join(
                f"{wine.wine_name} ({wine.producer}, {wine.vintage or 'NV'})" for wine in groups[key]
            )
            answer += f"{title} Wines: {names}\n\n"
    return answer


class QuestionShape(ABC):
    """One recognizable question form and the graph query that answers it."""

    name: str = "shape"
    pattern: Pattern

    def match(self, normalized_question: str) -> Optional[Dict[str, str]]:
        found = self.pattern.search(normalized_question)
        if not found:
            return None
        return {key: value.strip() for key, value in found.groupdict().items() if value}

    @abstractmethod
    def answer(self, graph: KnowledgeGraph, slots: Dict[str, str]) -> Optional[str]:
        """Formatted answer, or None when the graph has no rows for the slots."""
        pass


class GrapesInRegionOfCountry(QuestionShape):
    name = "grapes_in_region_of_country"
    pattern = re.compile(_GRAPE_LEAD + _REGION_OF_COUNTRY)

    def answer(self, graph: KnowledgeGraph, slots: Dict[str, str]) -> Optional[str]:
        regions = graph.find_regions(slots["region"], slots["country"])
        return _grape_answer(graph, regions)


class GrapesInCountry(QuestionShape):
    name = "grapes_in_country"
    pattern = re.compile(_GRAPE_LEAD + r"(?:the\s+)?(?P<country>[^,]+)$")

    def answer(self, graph: KnowledgeGraph, slots: Dict[str, str]) -> Optional[str]:
        regions = graph.regions_for_country(slots["country"])
        if not regions:
            return None
        usages = graph.grapes_for_appellations(_appellation_ids(graph, regions))
        if not usages:
            return None
        return format_grape_answer(usages, regions[0].country_name)


class GrapesInRegion(QuestionShape):
    name = "grapes_in_region"
    pattern = re.compile(_GRAPE_LEAD + _PLACE_PREFIX + r"(?P<region>[^,]+)$")

    def answer(self, graph: KnowledgeGraph, slots: Dict[str, str]) -> Optional[str]:
        return _grape_answer(graph, graph.find_regions(slots["region"]))


class WinesFromRegionOfCountry(QuestionShape):
    name = "wines_from_region_of_country"
    pattern = re.compile(_WINE_LEAD + _REGION_OF_COUNTRY)

    def answer(self, graph: KnowledgeGraph, slots: Dict[str, str]) -> Optional[str]:
        regions = graph.find_regions(slots["region"], slots["country"])
        return _wine_answer(graph, regions)


class WinesFromRegion(QuestionShape):
    name = "wines_from_region"
    pattern = re.compile(_WINE_LEAD + _PLACE_PREFIX + r"(?P<region>[^,]+)$")

    def answer(self, graph: KnowledgeGraph, slots: Dict[str, str]) -> Optional[str]:
        return _wine_answer(graph, graph.find_regions(slots["region"]))


def _appellation_ids(graph: KnowledgeGraph, regions: Sequence[RegionRecord]) -> List[int]:
    appellations = graph.appellations_for_regions([region.region_id for region in regions])
    return [appellation.appellation_id for appellation in appellations]


def _grape_answer(graph: KnowledgeGraph, regions: Sequence[RegionRecord]) -> Optional[str]:
    if not regions:
        return None
    usages = graph.grapes_for_appellations(_appellation_ids(graph, regions))
    if not usages:
        return None
    return format_grape_answer(usages, describe_location(regions))


def _wine_answer(graph: KnowledgeGraph, regions: Sequence[RegionRecord]) -> Optional[str]:
    if not regions:
        return None
    wines = graph.wines_for_appellations(_appellation_ids(graph, regions))
    if not wines:
        return None
    return format_wine_answer(wines, describe_location(regions, separator=" of "))


DEFAULT_SHAPES: List[QuestionShape] = [
    GrapesInRegionOfCountry(),
    GrapesInCountry(),
    GrapesInRegion(),
    WinesFromRegionOfCountry(),
    WinesFromRegion(),
]


class KnowledgeSynthesizer:
    """Priority-ordered rule engine over question shapes."""

    def __init__(self, graph: KnowledgeGraph, shapes: Optional[Sequence[QuestionShape]] = None):
        self.graph = graph
        self.shapes: List[QuestionShape] = list(DEFAULT_SHAPES if shapes is None else shapes)

    def add_shape(self, shape: QuestionShape, position: Optional[int] = None) -> None:
        """Register a new shape; by default it is tried last."""
        if position is None:
            self.shapes.append(shape)
        else:
            self.shapes.insert(position, shape)

    def synthesize(self, question: str) -> SynthesisResult:
        normalized = normalize_question(question)
        if not normalized:
            return SynthesisResult.no_answer()

        for shape in self.shapes:
            slots = shape.match(normalized)
            if slots is None:
                continue

            answer = shape.answer(self.graph, slots)
            if answer:
                logger.debug("Question answered by shape %s with slots %s", shape.name, slots)
                return SynthesisResult(answer=answer, can_answer=True, shape=shape.name)

            logger.debug("Shape %s matched %s but found no rows", shape.name, slots)

        return SynthesisResult.no_answer()
