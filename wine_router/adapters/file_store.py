"""File-backed model and example stores."""

import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .base import ExampleStore, ModelStore
from ..models.core import ModelArtifact, TrainingExample
from ..utils.error_handling import ModelStoreError


logger = logging.getLogger(__name__)


class FileModelStore(ModelStore):
    """Stores each artifact as ``<models_dir>/<kind>/v<version>.json``.

    The active-version pointer lives in ``<models_dir>/active_versions.json``
    so promotion and rollback never touch artifact files.
    """

    ACTIVE_VERSIONS_FILE = "active_versions.json"

    def __init__(self, models_dir: str = "data/models"):
        self.models_dir = Path(models_dir)
        self.models_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _artifact_path(self, kind: str, version: int) -> Path:
        return self.models_dir / kind / f"v{version}.json"

    def _read_artifact(self, path: Path) -> ModelArtifact:
        try:
            with open(path, "r") as f:
                return ModelArtifact.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise ModelStoreError(f"Failed to read model artifact {path}: {e}") from e

    def list_artifacts(self, kind: Optional[str] = None) -> List[ModelArtifact]:
        kind_dirs = [self.models_dir / kind] if kind else sorted(p for p in self.models_dir.iterdir() if p.is_dir())
        artifacts = []
        for kind_dir in kind_dirs:
            if kind_dir.is_dir():
                artifacts.extend(self._read_artifact(path) for path in kind_dir.glob("v*.json"))
        artifacts.sort(key=lambda artifact: (artifact.created_at, artifact.version))
        return artifacts

    def get_artifact(self, kind: str, version: int) -> Optional[ModelArtifact]:
        path = self._artifact_path(kind, version)
        if not path.exists():
            return None
        return self._read_artifact(path)

    def insert_artifact(self, artifact: ModelArtifact) -> None:
        path = self._artifact_path(artifact.kind, artifact.version)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            # Exclusive create: artifacts are immutable once written
            with open(path, "x") as f:
                json.dump(artifact.to_dict(), f, indent=2)
        except FileExistsError:
            raise ModelStoreError(f"Artifact {artifact.kind} v{artifact.version} already exists") from None
        except OSError as e:
            raise ModelStoreError(f"Failed to write model artifact {path}: {e}") from e

        logger.info("Model artifact %s v%d saved to %s", artifact.kind, artifact.version, path)

    def get_active_versions(self) -> Dict[str, int]:
        path = self.models_dir / self.ACTIVE_VERSIONS_FILE
        if not path.exists():
            return {}
        try:
            with open(path, "r") as f:
                return {kind: int(version) for kind, version in json.load(f).items()}
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise ModelStoreError(f"Failed to read active versions: {e}") from e

    def set_active_versions(self, versions: Dict[str, int]) -> None:
        with self._lock:
            merged = self.get_active_versions()
            merged.update(versions)
            path = self.models_dir / self.ACTIVE_VERSIONS_FILE
            tmp_path = path.with_suffix(".tmp")
            try:
                with open(tmp_path, "w") as f:
                    json.dump(merged, f, indent=2, sort_keys=True)
                tmp_path.replace(path)
            except OSError as e:
                raise ModelStoreError(f"Failed to write active versions: {e}") from e

        logger.info("Active model versions: %s", merged)


class JsonlExampleStore(ExampleStore):
    """Training examples as JSON lines, one example per line."""

    def __init__(self, path: str = "data/training_examples.jsonl"):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load_examples(self, kind: str, limit: int) -> List[TrainingExample]:
        if not self.path.exists():
            return []

        examples: List[TrainingExample] = []
        with open(self.path, "r") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed example on line %d of %s", line_number, self.path)
                    continue
                if not isinstance(data, dict) or data.get("kind") != kind:
                    continue
                try:
                    example = TrainingExample.from_dict(data)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Skipping invalid example on line %d of %s: %r", line_number, self.path, e)
                    continue
                examples.append(example)
                if len(examples) >= limit:
                    break
        return examples

    def add_examples(self, examples: Sequence[TrainingExample]) -> int:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, open(self.path, "a") as f:
            for example in examples:
                f.write(json.dumps(example.to_dict()) + "\n")
        return len(examples)
