"""Configuration utilities for the wine question router."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from omegaconf import DictConfig, OmegaConf

from . import settings

logger = logging.getLogger(__name__)

VALID_SCHEMA_MODES = ("strict", "compatible")


def validate_config(config: Optional[DictConfig] = None) -> bool:
    """
    Validate the configuration for required fields and valid values.

    Returns:
        True if configuration is valid, False otherwise
    """
    config = config if config is not None else settings.get_config()
    try:
        assert config.api.port > 0, "API port must be positive"

        assert 0 < config.model.learning_rate <= 1, "Learning rate must be between 0 and 1"
        assert config.model.regularization >= 0, "Regularization must be non-negative"
        assert config.model.schema_mode in VALID_SCHEMA_MODES, (
            f"Schema mode must be one of {VALID_SCHEMA_MODES}"
        )

        assert config.training.epochs > 0, "Training epochs must be positive"
        assert config.training.min_examples >= 1, "Minimum example count must be at least 1"
        assert config.training.max_examples >= config.training.min_examples, (
            "max_examples must not be below min_examples"
        )
        assert 0 <= config.training.decision_threshold <= 1, "Decision threshold must be in [0, 1]"

        for key in ("non_wine_threshold", "structured_route_threshold"):
            assert 0 <= config.inference[key] <= 1, f"inference.{key} must be in [0, 1]"
        assert config.inference.context_passages > 0, "Context passage count must be positive"
        assert config.inference.structured_min_answer_length >= 0, (
            "Structured answer length cutoff must be non-negative"
        )

        assert config.retrieval.limit > 0, "Retrieval limit must be positive"
        assert config.retrieval.timeout > 0, "Retrieval timeout must be positive"

        assert config.storage.models_dir, "Model directory must be specified"
        return True
    except (AssertionError, AttributeError, KeyError) as e:
        logger.error(f"Configuration validation failed: {e}")
        return False


def get_environment() -> str:
    """Get the current environment name."""
    return settings.config_manager.environment


def get_config_value(key_path: str, default: Any = None) -> Any:
    """
    Get a configuration value using dot notation.

    Args:
        key_path: Configuration key path (e.g., 'inference.non_wine_threshold')
        default: Default value if key not found
    """
    return settings.config_manager.get(key_path, default)


def print_config_summary() -> None:
    """Print a summary of the current configuration."""
    config = settings.get_config()
    print("=== Wine Router Configuration Summary ===")
    print(f"Environment: {get_environment()}")
    print(f"API: {config.api.host}:{config.api.port} (debug: {config.api.debug})")
    print(f"Models: {config.storage.models_dir} (schema mode: {config.model.schema_mode})")
    print(f"Training: {config.training.epochs} epochs, lr={config.model.learning_rate}")
    print(f"Non-wine redirect threshold: {config.inference.non_wine_threshold}")
    print(f"Log Level: {config.logging.level}")
    print("=" * 41)


def export_config_to_file(output_path: str, format: str = "yaml") -> None:
    """
    Export current configuration to a file.

    Args:
        output_path: Path to output file
        format: Output format ('yaml' or 'json')
    """
    config = settings.get_config()
    output_path = Path(output_path)

    if format.lower() == "yaml":
        OmegaConf.save(config, output_path)
    elif format.lower() == "json":
        with open(output_path, "w") as f:
            json.dump(OmegaConf.to_container(config, resolve=True), f, indent=2)
    else:
        raise ValueError(f"Unsupported format: {format}")
