"""Abstract interfaces for the router's external collaborators.

The model store, example store, knowledge graph and passage retriever are
owned by other systems; the router only talks to them through these
interfaces.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from ..models.core import (
    AppellationRecord,
    CandidatePassage,
    GrapeUsage,
    ModelArtifact,
    RegionRecord,
    TrainingExample,
    WineRecord,
)
from ..utils.error_handling import RetrievalError




class ModelStore(ABC):
    """Versioned, append-only storage for model artifacts plus the active-version pointer."""

    @abstractmethod
    def list_artifacts(self, kind: Optional[str] = None) -> List[ModelArtifact]:
        """Return artifacts in creation order, optionally for one kind."""
        pass

    @abstractmethod
    def get_artifact(self, kind: str, version: int) -> Optional[ModelArtifact]:
        pass

    @abstractmethod
    def insert_artifact(self, artifact: ModelArtifact) -> None:
        """Persist a new artifact.

        Raises:
            ModelStoreError: If an artifact with the same kind and version exists
        """
        pass

    @abstractmethod
    def get_active_versions(self) -> Dict[str, int]:
        pass

    @abstractmethod
    def set_active_versions(self, versions: Dict[str, int]) -> None:
        pass

    def latest_version(self, kind: str) -> int:
        """Highest stored version for a kind, 0 when none exist."""
        return max((artifact.version for artifact in self.list_artifacts(kind)), default=0)

    def get_active_artifact(self, kind: str) -> Optional[ModelArtifact]:
        version = self.get_active_versions().get(kind)
        if version is None:
            return None
        return self.get_artifact(kind, version)


class ExampleStore(ABC):
    """Read boundary for labeled training examples."""

    @abstractmethod
    def load_examples(self, kind: str, limit: int) -> List[TrainingExample]:
        pass

    @abstractmethod
    def add_examples(self, examples: Sequence[TrainingExample]) -> int:
        """Append examples and return how many were stored."""
        pass

    def count(self, kind: str) -> int:
        return len(self.load_examples(kind, limit=10 ** 9))


class KnowledgeGraph(ABC):
    """Relational wine knowledge: countries -> regions -> appellations -> grapes/wines.

    Name lookups are case-insensitive.
    """

    @abstractmethod
    def find_regions(self, region_name: str, country_name: Optional[str] = None) -> List[RegionRecord]:
        pass

    @abstractmethod
    def regions_for_country(self, country_name: str) -> List[RegionRecord]:
        pass

    @abstractmethod
    def appellations_for_regions(self, region_ids: Sequence[int]) -> List[AppellationRecord]:
        pass

    @abstractmethod
    def grapes_for_appellations(self, appellation_ids: Sequence[int]) -> List[GrapeUsage]:
        pass

    @abstractmethod
    def wines_for_appellations(self, appellation_ids: Sequence[int]) -> List[WineRecord]:
        pass

    @abstractmethod
    def list_entity_names(self, entity_type: str) -> List[str]:
        """All known names of one entity type (grapes, appellations, regions, ...)."""
        pass


class PassageRetriever(ABC):
    """Stand-in for the embedding + nearest-neighbour passage search service."""

    def __init__(self, retriever_id: str = "passages", timeout: float = 5.0):
        self.retriever_id = retriever_id
        self.timeout = timeout

    @abstractmethod
    async def retrieve(self, question: str, limit: int = 6) -> List[CandidatePassage]:
        """Return candidate passages, best first.

        Raises:
            RetrievalError: If the service fails
        """
        pass

    async def health_check(self) -> bool:
        return True

    async def retrieve_with_timeout(
        self, question: str, limit: int = 6, timeout: Optional[float] = None
    ) -> List[CandidatePassage]:
        """Retrieve with a timeout budget.

        Raises:
            RetrievalError: If the call times out or fails
        """
        timeout = timeout or self.timeout
        try:
            return await asyncio.wait_for(self.retrieve(question, limit), timeout=timeout)
        except asyncio.TimeoutError:
            raise RetrievalError(f"Passage retrieval timed out after {timeout} seconds") from None
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalError(f"Passage retrieval failed: {e}") from e

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(retriever_id='{self.retriever_id}', timeout={self.timeout})"
