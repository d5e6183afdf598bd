"""In-memory implementations of the collaborator interfaces for tests and development."""

import asyncio
import logging
import random
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from omegaconf import OmegaConf

from .base import ExampleStore, KnowledgeGraph, ModelStore, PassageRetriever
from ..features.extraction import tokenize
from ..models.core import (
    AppellationRecord,
    CandidatePassage,
    GrapeRecord,
    GrapeUsage,
    ModelArtifact,
    RegionRecord,
    TrainingExample,
    WineRecord,
)
from ..utils.error_handling import ModelStoreError, RetrievalError


logger = logging.getLogger(__name__)


def load_structured_file(path: str) -> Dict[str, Any]:
    """Load a YAML or JSON document into plain containers."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")
    return OmegaConf.to_container(OmegaConf.load(file_path), resolve=True)


class InMemoryModelStore(ModelStore):
    """Model store backed by a list; insertion order is creation order."""

    def __init__(self):
        self._artifacts: List[ModelArtifact] = []
        self._active: Dict[str, int] = {}
        self._lock = threading.Lock()

    def list_artifacts(self, kind: Optional[str] = None) -> List[ModelArtifact]:
        with self._lock:
            return [a for a in self._artifacts if kind is None or a.kind == kind]

    def get_artifact(self, kind: str, version: int) -> Optional[ModelArtifact]:
        with self._lock:
            for artifact in self._artifacts:
                if artifact.kind == kind and artifact.version == version:
                    return artifact
        return None

    def insert_artifact(self, artifact: ModelArtifact) -> None:
        with self._lock:
            if any(a.kind == artifact.kind and a.version == artifact.version for a in self._artifacts):
                raise ModelStoreError(f"Artifact {artifact.kind} v{artifact.version} already exists")
            self._artifacts.append(artifact)

    def get_active_versions(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._active)

    def set_active_versions(self, versions: Dict[str, int]) -> None:
        with self._lock:
            self._active.update(versions)


class InMemoryExampleStore(ExampleStore):
    """Example store backed by a list."""

    def __init__(self, examples: Optional[Iterable[TrainingExample]] = None):
        self._examples: List[TrainingExample] = list(examples or [])
        self._lock = threading.Lock()

    def load_examples(self, kind: str, limit: int) -> List[TrainingExample]:
        with self._lock:
            return [example for example in self._examples if example.kind == kind][:limit]

    def add_examples(self, examples: Sequence[TrainingExample]) -> int:
        with self._lock:
            self._examples.extend(examples)
        return len(examples)


class InMemoryKnowledgeGraph(KnowledgeGraph):
    """Knowledge graph held as row lists, mirroring the relational tables."""

    def __init__(
        self,
        regions: Sequence[RegionRecord] = (),
        appellations: Sequence[AppellationRecord] = (),
        grapes: Sequence[GrapeRecord] = (),
        grape_appellations: Sequence[tuple] = (),
        wines: Sequence[WineRecord] = (),
        producers: Sequence[str] = (),
        classifications: Sequence[str] = (),
    ):
        """
        Args:
            regions: Country/region rows
            appellations: Appellation rows linked to regions
            grapes: Grape rows
            grape_appellations: (grape_id, appellation_id) join rows
            wines: Wine rows linked to appellations
            producers: Extra producer names not attached to a wine
            classifications: Extra classification names not attached to a wine
        """
        self.regions = list(regions)
        self.appellations = list(appellations)
        self.grapes = {grape.grape_id: grape for grape in grapes}
        self.grape_appellations = [(int(g), int(a)) for g, a in grape_appellations]
        self.wines = list(wines)
        self._extra_producers = list(producers)
        self._extra_classifications = list(classifications)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryKnowledgeGraph":
        return cls(
            regions=[RegionRecord(**row) for row in data.get("regions", [])],
            appellations=[AppellationRecord(**row) for row in data.get("appellations", [])],
            grapes=[GrapeRecord(**row) for row in data.get("grapes", [])],
            grape_appellations=[
                (row["grape_id"], row["appellation_id"]) for row in data.get("grape_appellations", [])
            ],
            wines=[WineRecord(**row) for row in data.get("wines", [])],
            producers=data.get("producers", []),
            classifications=data.get("classifications", []),
        )

    @classmethod
    def from_file(cls, path: str) -> "InMemoryKnowledgeGraph":
        graph = cls.from_dict(load_structured_file(path))
        logger.info(
            "Loaded knowledge graph from %s: %d regions, %d appellations, %d grapes, %d wines",
            path, len(graph.regions), len(graph.appellations), len(graph.grapes), len(graph.wines),
        )
        return graph

    def find_regions(self, region_name: str, country_name: Optional[str] = None) -> List[RegionRecord]:
        region_key = region_name.strip().lower()
        country_key = country_name.strip().lower() if country_name else None
        return [
            region for region in self.regions
            if region.region_name.lower() == region_key
            and (country_key is None or region.country_name.lower() == country_key)
        ]

    def regions_for_country(self, country_name: str) -> List[RegionRecord]:
        country_key = country_name.strip().lower()
        return [region for region in self.regions if region.country_name.lower() == country_key]

    def appellations_for_regions(self, region_ids: Sequence[int]) -> List[AppellationRecord]:
        wanted = set(region_ids)
        return [appellation for appellation in self.appellations if appellation.region_id in wanted]

    def grapes_for_appellations(self, appellation_ids: Sequence[int]) -> List[GrapeUsage]:
        names = {a.appellation_id: a.appellation for a in self.appellations}
        wanted = set(appellation_ids)
        usages: Dict[int, GrapeUsage] = {}
        for grape_id, appellation_id in self.grape_appellations:
            if appellation_id not in wanted or grape_id not in self.grapes:
                continue
            usage = usages.setdefault(grape_id, GrapeUsage(grape=self.grapes[grape_id]))
            name = names.get(appellation_id)
            if name and name not in usage.appellations:
                usage.appellations.append(name)
        return list(usages.values())

    def wines_for_appellations(self, appellation_ids: Sequence[int]) -> List[WineRecord]:
        wanted = set(appellation_ids)
        return [wine for wine in self.wines if wine.appellation_id in wanted]

    def list_entity_names(self, entity_type: str) -> List[str]:
        if entity_type == "grapes":
            return [grape.grape_variety for grape in self.grapes.values()]
        if entity_type == "appellations":
            return [appellation.appellation for appellation in self.appellations]
        if entity_type == "regions":
            return sorted({region.region_name for region in self.regions})
        if entity_type == "countries":
            return sorted({region.country_name for region in self.regions})
        if entity_type == "wines":
            return [wine.wine_name for wine in self.wines]
        if entity_type == "producers":
            return sorted({wine.producer for wine in self.wines if wine.producer} | set(self._extra_producers))
        if entity_type == "classifications":
            return sorted(
                {wine.classification for wine in self.wines if wine.classification}
                | set(self._extra_classifications)
            )
        raise ValueError(f"Unknown entity type: {entity_type}")


class InMemoryPassageRetriever(PassageRetriever):
    """Lexical-overlap retriever over a fixed passage list.

    Scores are the fraction of distinct question words found in the passage,
    so they fall in [0, 1] like cosine similarities.
    """

    def __init__(
        self,
        passages: Sequence[Dict[str, Any]] = (),
        response_delay: float = 0.0,
        failure_rate: float = 0.0,
        timeout: float = 5.0,
        retriever_id: str = "memory",
    ):
        super().__init__(retriever_id=retriever_id, timeout=timeout)
        self.passages = [
            {"id": passage.get("id"), "text": passage["text"], "tokens": set(tokenize(passage["text"]))}
            for passage in passages
        ]
        self.response_delay = response_delay
        self.failure_rate = failure_rate

    @classmethod
    def from_file(cls, path: str, **kwargs) -> "InMemoryPassageRetriever":
        data = load_structured_file(path)
        passages = data.get("passages", []) if isinstance(data, dict) else data
        return cls(passages=passages, **kwargs)

    async def retrieve(self, question: str, limit: int = 6) -> List[CandidatePassage]:
        if self.response_delay > 0:
            await asyncio.sleep(self.response_delay)

        if self.failure_rate > 0 and random.random() < self.failure_rate:
            raise RetrievalError(f"Simulated failure in retriever {self.retriever_id}")

        question_tokens = {token for token in tokenize(question) if len(token) > 2}
        if not question_tokens:
            return []

        scored = []
        for passage in self.passages:
            score = len(question_tokens & passage["tokens"]) / len(question_tokens)
            if score > 0:
                scored.append(CandidatePassage(text=passage["text"], score=round(score, 6), source_id=passage["id"]))

        scored.sort(key=lambda candidate: candidate.score, reverse=True)
        return scored[:limit]
