# Wine question router - main package

from .config.settings import config_manager, get_config
from .utils.logging import setup_logging, get_logger
from .models import (
    CandidatePassage,
    RerankedCandidate,
    TrainingExample,
    ModelArtifact,
    IntentScores,
    RoutingOutcome,
    RoutingPath,
)

__version__ = "0.1.0"

__all__ = [
    "config_manager",
    "get_config",
    "setup_logging",
    "get_logger",
    "CandidatePassage",
    "RerankedCandidate",
    "TrainingExample",
    "ModelArtifact",
    "IntentScores",
    "RoutingOutcome",
    "RoutingPath",
]
