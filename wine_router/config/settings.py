"""Configuration management for the wine question router using OmegaConf."""

import os
from pathlib import Path
from typing import Any, Dict, Optional
from omegaconf import DictConfig, OmegaConf


_REPO_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"
DEFAULT_CONFIG_DIR = _REPO_CONFIG_DIR if _REPO_CONFIG_DIR.is_dir() else Path("config")


class ConfigManager:
    """Configuration manager using OmegaConf for YAML-based configuration."""

    # Environment variable -> dot-notation config key
    ENV_MAPPINGS = {
        "WINE_ROUTER_API_HOST": "api.host",
        "WINE_ROUTER_API_PORT": "api.port",
        "WINE_ROUTER_API_DEBUG": "api.debug",
        "WINE_ROUTER_LOG_LEVEL": "logging.level",
        "WINE_ROUTER_MODELS_DIR": "storage.models_dir",
        "WINE_ROUTER_EXAMPLES_PATH": "storage.examples_path",
        "WINE_ROUTER_KNOWLEDGE_GRAPH": "storage.knowledge_graph_path",
        "WINE_ROUTER_PASSAGES_PATH": "storage.passages_path",
        "WINE_ROUTER_SCHEMA_MODE": "model.schema_mode",
        "WINE_ROUTER_NON_WINE_THRESHOLD": "inference.non_wine_threshold",
        "WINE_ROUTER_RETRIEVAL_TIMEOUT": "retrieval.timeout",
        "WINE_ROUTER_TRAINING_EPOCHS": "training.epochs",
    }

    def __init__(
        self,
        config_dir: Optional[str] = None,
        environment: Optional[str] = None,
        config_file: Optional[str] = None,
    ):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory containing configuration files
            environment: Environment name (development, production, etc.)
            config_file: Extra YAML file merged on top of the directory files
        """
        self.config_dir = Path(
            config_dir or os.getenv("WINE_ROUTER_CONFIG_DIR") or DEFAULT_CONFIG_DIR
        )
        self.environment = environment or os.getenv("ENVIRONMENT", "default")
        self.config_file = Path(config_file) if config_file else None
        self._config: Optional[DictConfig] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML files."""
        default_config_path = self.config_dir / "default.yaml"
        if not default_config_path.exists():
            raise FileNotFoundError(f"Default configuration file not found: {default_config_path}")

        config = OmegaConf.load(default_config_path)

        env_config_path = self.config_dir / f"{self.environment}.yaml"
        if self.environment != "default" and env_config_path.exists():
            config = OmegaConf.merge(config, OmegaConf.load(env_config_path))

        user_config_path = self.config_dir / "user.yaml"
        if user_config_path.exists():
            config = OmegaConf.merge(config, OmegaConf.load(user_config_path))

        if self.config_file is not None:
            if not self.config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_file}")
            config = OmegaConf.merge(config, OmegaConf.load(self.config_file))

        self._resolve_storage_paths(config)
        config = self._apply_env_overrides(config)

        self._config = config

    def _resolve_storage_paths(self, config: DictConfig) -> None:
        """Anchor relative storage paths from config files at the config directory's parent."""
        storage = config.get("storage")
        if storage is None:
            return
        base_dir = self.config_dir.resolve().parent
        for key, value in list(storage.items()):
            if isinstance(value, str) and value and not Path(value).is_absolute():
                storage[key] = str(base_dir / value)

    def _apply_env_overrides(self, config: DictConfig) -> DictConfig:
        """Apply environment variable overrides to configuration."""
        for env_var, config_path in self.ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                # Convert string values to appropriate types
                if env_value.lower() in ("true", "false"):
                    env_value = env_value.lower() == "true"
                elif env_value.isdigit():
                    env_value = int(env_value)
                elif env_value.replace(".", "", 1).isdigit():
                    env_value = float(env_value)

                OmegaConf.update(config, config_path, env_value, merge=True)

        return config

    @property
    def config(self) -> DictConfig:
        """Get the current configuration."""
        if self._config is None:
            self._load_config()
        return self._config

    def reload(self) -> None:
        """Reload configuration from files."""
        self._load_config()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Args:
            key: Configuration key in dot notation (e.g., 'inference.non_wine_threshold')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        return OmegaConf.select(self.config, key, default=default)

    def section(self, name: str) -> Dict[str, Any]:
        """Return a top-level section as a plain dictionary."""
        node = OmegaConf.select(self.config, name)
        if node is None:
            return {}
        return OmegaConf.to_container(node, resolve=True)


# Global configuration manager instance
config_manager = ConfigManager()


def configure(
    config_dir: Optional[str] = None,
    environment: Optional[str] = None,
    config_file: Optional[str] = None,
) -> ConfigManager:
    """Replace the global configuration, e.g. from CLI flags."""
    global config_manager
    config_manager = ConfigManager(config_dir=config_dir, environment=environment, config_file=config_file)
    return config_manager


def get_config() -> DictConfig:
    """Get the active configuration tree."""
    return config_manager.config


def get_api_config() -> Dict[str, Any]:
    """Get API configuration parameters."""
    return config_manager.section("api")


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration parameters."""
    return config_manager.section("logging")


def get_model_config() -> Dict[str, Any]:
    """Get linear model configuration parameters."""
    return config_manager.section("model")


def get_training_config() -> Dict[str, Any]:
    """Get training configuration parameters."""
    return config_manager.section("training")


def get_inference_config() -> Dict[str, Any]:
    """Get inference and fallback-rule configuration parameters."""
    return config_manager.section("inference")


def get_retrieval_config() -> Dict[str, Any]:
    """Get passage retrieval configuration parameters."""
    return config_manager.section("retrieval")


def get_storage_config() -> Dict[str, Any]:
    """Get storage location configuration parameters."""
    return config_manager.section("storage")
