"""Main application entry point for the wine question router."""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

from .utils.logging import setup_logging
from .config import settings
from .config.utils import validate_config
from .adapters.base import PassageRetriever
from .adapters.file_store import FileModelStore, JsonlExampleStore
from .adapters.memory import InMemoryKnowledgeGraph, InMemoryPassageRetriever
from .features.dictionaries import EntityDictionaries
from .models.core import MODEL_KINDS
from .services.inference import InferenceEngine
from .services.knowledge_synthesis import KnowledgeSynthesizer
from .services.router import QuestionRouter
from .services.training_pipeline import ModelTrainingPipeline
from .utils.monitoring import get_metrics_collector


class WineRouterApp:
    """Wires configuration, storage and services into one application."""

    def __init__(self, config_path: Optional[str] = None, environment: Optional[str] = None):
        """
        Initialize the application.

        Args:
            config_path: Path to configuration file or directory
            environment: Environment name (development, production, etc.)
        """
        self.config_path = config_path
        self.environment = environment

        config_dir = None
        config_file = None

        if config_path:
            config_path_obj = Path(config_path)
            if config_path_obj.is_dir():
                config_dir = str(config_path_obj)
            elif config_path_obj.is_file():
                config_file = str(config_path_obj)
                if (config_path_obj.parent / "default.yaml").exists():
                    config_dir = str(config_path_obj.parent)
            else:
                raise FileNotFoundError(f"Configuration path not found: {config_path}")

        self.config_manager = settings.configure(
            config_dir=config_dir,
            environment=environment,
            config_file=config_file,
        )
        self.config = self.config_manager.config

        self.logger = setup_logging()
        self.metrics = get_metrics_collector()
        self._built = False

    def validate_configuration(self) -> bool:
        """Validate the loaded configuration and make sure storage is usable."""
        if not validate_config(self.config):
            return False

        models_dir = Path(self.config.storage.models_dir)
        try:
            models_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(f"Cannot create model directory: {e}")
            return False

        self.logger.info("Configuration validation successful")
        return True

    def log_configuration_info(self) -> None:
        self.logger.info(f"Environment: {self.config_manager.environment}")
        self.logger.info(f"Model directory: {self.config.storage.models_dir}")
        self.logger.info(f"Schema mode: {self.config.model.schema_mode}")
        self.logger.info(f"Non-wine redirect threshold: {self.config.inference.non_wine_threshold}")

    def build(self) -> "WineRouterApp":
        """Create stores and services; safe to call more than once."""
        if self._built:
            return self

        storage = self.config.storage
        self.model_store = FileModelStore(storage.models_dir)
        self.example_store = JsonlExampleStore(storage.examples_path)
        self.knowledge_graph = self._load_knowledge_graph(storage.knowledge_graph_path)
        self.retriever = self._load_retriever(storage.passages_path)
        self.dictionaries = EntityDictionaries.from_knowledge_graph(self.knowledge_graph)
        self.logger.info(f"Entity dictionaries loaded with {self.dictionaries.size()} terms")

        self.engine = InferenceEngine(self.model_store, metrics=self.metrics)
        self.pipeline = ModelTrainingPipeline(self.model_store, self.example_store)
        self.synthesizer = KnowledgeSynthesizer(self.knowledge_graph)
        self.router = QuestionRouter(
            self.engine,
            self.synthesizer,
            self.dictionaries,
            retriever=self.retriever,
            metrics=self.metrics,
        )
        self._built = True
        return self

    def _load_knowledge_graph(self, path: Optional[str]) -> InMemoryKnowledgeGraph:
        if path and Path(path).exists():
            return InMemoryKnowledgeGraph.from_file(path)
        self.logger.warning(f"Knowledge graph file {path} not found; structured answers are disabled")
        return InMemoryKnowledgeGraph()

    def _load_retriever(self, path: Optional[str]) -> Optional[PassageRetriever]:
        if path and Path(path).exists():
            return InMemoryPassageRetriever.from_file(path, timeout=float(self.config.retrieval.timeout))
        self.logger.warning(f"Passage file {path} not found; retrieval is disabled")
        return None

    async def ask(self, question: str) -> dict:
        """Route one question and return the log record plus the answer."""
        self.build()
        outcome = await self.router.route(question)
        result = outcome.to_log_record()
        result["answer"] = outcome.synthesis.answer if outcome.synthesis.can_answer else None
        result["context"] = [candidate.to_dict() for candidate in outcome.context]
        return result

    def train(self, kinds: Optional[List[str]] = None) -> dict:
        self.build()
        return self.pipeline.retrain_all(kinds=kinds)

    def promote(self, kind: str, version: int) -> dict:
        self.build()
        return self.pipeline.promote(kind, version)

    def models(self) -> dict:
        self.build()
        return {
            "artifacts": [
                {
                    "kind": artifact.kind,
                    "version": artifact.version,
                    "created_at": artifact.created_at.isoformat(),
                    "created_by": artifact.created_by,
                    "metrics": artifact.metrics,
                }
                for artifact in self.model_store.list_artifacts()
            ],
            "active_versions": self.model_store.get_active_versions(),
        }

    def create_api(self):
        """FastAPI application bound to this instance's services."""
        from .api.app import AppDependencies, create_app

        self.build()
        return create_app(
            AppDependencies(
                router=self.router,
                engine=self.engine,
                pipeline=self.pipeline,
                model_store=self.model_store,
                example_store=self.example_store,
                synthesizer=self.synthesizer,
                metrics=self.metrics,
            )
        )

    def serve(self) -> int:
        import uvicorn

        api_config = self.config.api
        self.logger.info(f"Starting API on {api_config.host}:{api_config.port}")
        uvicorn.run(
            self.create_api(),
            host=api_config.host,
            port=int(api_config.port),
            log_level="debug" if api_config.debug else "info",
        )
        return 0

    def run(self, args: argparse.Namespace) -> int:
        """
        Execute the selected CLI command.

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        if not self.validate_configuration():
            self.logger.error("Configuration validation failed")
            return 1
        self.log_configuration_info()

        command = args.command or "models"
        if command == "ask":
            result = asyncio.run(self.ask(args.question))
            if args.json:
                _print_json(result)
            else:
                _print_answer(result)
            return 0

        if command == "train":
            summary = self.train([args.kind] if args.kind else None)
            _print_json(summary)
            trained = [outcome for outcome in summary["results"].values() if outcome["status"] == "trained"]
            return 0 if trained else 2

        if command == "promote":
            _print_json({"active_versions": self.promote(args.kind, args.version)})
            return 0

        if command == "models":
            _print_json(self.models())
            return 0

        if command == "serve":
            return self.serve()

        self.logger.error(f"Unknown command: {command}")
        return 1


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, default=str))


def _print_answer(result: dict) -> None:
    path = result["path"]
    print(f"Path: {path} (confidence {result['route_confidence']:.3f})")
    if result.get("answer"):
        print()
        print(result["answer"].rstrip())
    elif result.get("context"):
        print()
        for i, passage in enumerate(result["context"], start=1):
            print(f"[{i}] ({passage['score']:.3f}) {passage['text']}")
    elif path == "redirect":
        print("That does not look like a wine question.")
    else:
        print("No answer available.")


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the command-line argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="wine-router",
        description="Wine question router - routes questions between structured answers and passage retrieval",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s ask "What grapes are used in Tuscany of Italy?"
  %(prog)s train                              # Retrain every model kind
  %(prog)s train --kind route                 # Retrain only the route scorer
  %(prog)s promote --kind route --version 2   # Activate a stored version
  %(prog)s --config custom/ --env staging models
        """
    )

    # Configuration options
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to configuration file or directory (default: ./config)"
    )

    parser.add_argument(
        "--environment", "--env", "-e",
        type=str,
        help="Environment name (development, production, etc.)"
    )

    # Logging options
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set logging level (overrides configuration)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging (equivalent to --log-level DEBUG)"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output (equivalent to --log-level ERROR)"
    )

    subparsers = parser.add_subparsers(dest="command")

    ask_parser = subparsers.add_parser("ask", help="Route a question and print the answer")
    ask_parser.add_argument("question", type=str, help="Question to route")
    ask_parser.add_argument("--json", action="store_true", help="Print the full routing record as JSON")

    train_parser = subparsers.add_parser("train", help="Retrain models from stored examples")
    train_parser.add_argument("--kind", choices=MODEL_KINDS, help="Retrain a single model kind")

    promote_parser = subparsers.add_parser("promote", help="Activate a stored model version")
    promote_parser.add_argument("--kind", choices=MODEL_KINDS, required=True)
    promote_parser.add_argument("--version", type=int, required=True)

    subparsers.add_parser("models", help="List stored models and active versions")
    subparsers.add_parser("serve", help="Run the HTTP API")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main application entry point with CLI argument parsing.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    # Handle logging level overrides
    if args.verbose:
        os.environ["WINE_ROUTER_LOG_LEVEL"] = "DEBUG"
    elif args.quiet:
        os.environ["WINE_ROUTER_LOG_LEVEL"] = "ERROR"
    elif args.log_level:
        os.environ["WINE_ROUTER_LOG_LEVEL"] = args.log_level

    try:
        app = WineRouterApp(
            config_path=args.config,
            environment=args.environment
        )
        return app.run(args)

    except KeyboardInterrupt:
        print("\nApplication interrupted by user")
        return 130
    except Exception as e:
        print(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
