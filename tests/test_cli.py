"""Tests for CLI argument parser and main entry point."""

import json
import os
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from wine_router.config import settings
from wine_router.config.settings import DEFAULT_CONFIG_DIR
from wine_router.main import WineRouterApp, create_argument_parser, main


KNOWLEDGE_GRAPH = Path(__file__).resolve().parent.parent / "data" / "knowledge_graph.yaml"
PASSAGES = KNOWLEDGE_GRAPH.with_name("passages.yaml")


class TestArgumentParser:
    """Test CLI argument parser functionality."""

    def test_argument_parser_creation(self):
        parser = create_argument_parser()
        assert parser.prog == "wine-router"

    def test_config_argument(self):
        parser = create_argument_parser()

        assert parser.parse_args(["-c", "test.yaml"]).config == "test.yaml"
        assert parser.parse_args(["--config", "/path/to/config"]).config == "/path/to/config"

    def test_environment_argument(self):
        parser = create_argument_parser()

        assert parser.parse_args(["--environment", "production"]).environment == "production"
        assert parser.parse_args(["--env", "staging"]).environment == "staging"
        assert parser.parse_args(["-e", "development"]).environment == "development"

    def test_logging_arguments(self):
        parser = create_argument_parser()

        args = parser.parse_args(["-v", "--log-level", "WARNING"])
        assert args.verbose is True
        assert args.log_level == "WARNING"
        assert parser.parse_args(["-q"]).quiet is True

        with pytest.raises(SystemExit):
            parser.parse_args(["--log-level", "LOUD"])

    def test_no_command(self):
        assert create_argument_parser().parse_args([]).command is None

    def test_ask_command(self):
        args = create_argument_parser().parse_args(["ask", "What is Barolo?", "--json"])

        assert args.command == "ask"
        assert args.question == "What is Barolo?"
        assert args.json is True

    def test_train_command(self):
        parser = create_argument_parser()

        assert parser.parse_args(["train"]).kind is None
        assert parser.parse_args(["train", "--kind", "route"]).kind == "route"
        with pytest.raises(SystemExit):
            parser.parse_args(["train", "--kind", "ranker"])

    def test_promote_requires_kind_and_version(self):
        parser = create_argument_parser()

        args = parser.parse_args(["promote", "--kind", "intent", "--version", "2"])
        assert (args.kind, args.version) == ("intent", 2)
        with pytest.raises(SystemExit):
            parser.parse_args(["promote", "--kind", "intent"])


class TestMain:
    """Test the main entry point against a temporary configuration."""

    def setup_method(self):
        self.original_manager = settings.config_manager
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config_dir = self.temp_dir / "config"
        self.config_dir.mkdir()
        shutil.copy(DEFAULT_CONFIG_DIR / "default.yaml", self.config_dir / "default.yaml")
        storage = {
            "storage": {
                "models_dir": str(self.temp_dir / "models"),
                "examples_path": str(self.temp_dir / "examples.jsonl"),
                "knowledge_graph_path": str(KNOWLEDGE_GRAPH),
                "passages_path": str(self.temp_dir / "missing_passages.yaml"),
            }
        }
        # JSON is valid YAML
        (self.config_dir / "user.yaml").write_text(json.dumps(storage))

    def teardown_method(self):
        settings.config_manager = self.original_manager
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_main(self, *argv):
        with patch.dict(os.environ, {}, clear=False):
            return main(["--config", str(self.config_dir), *argv])

    def test_models_default_command(self, capsys):
        assert self.run_main() == 0

        output = json.loads(capsys.readouterr().out)
        assert output == {"artifacts": [], "active_versions": {}}
        assert (self.temp_dir / "models").is_dir()

    def test_ask_structured(self, capsys):
        exit_code = self.run_main("ask", "What grapes are used in Tuscany of Italy?")

        output = capsys.readouterr().out
        assert exit_code == 0
        assert output.startswith("Path: structured")
        assert "Sangiovese" in output

    def test_ask_json(self, capsys):
        exit_code = self.run_main("ask", "How do I change a car tyre?", "--json")

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output["path"] == "redirect"
        assert output["answer"] is None
        assert output["context"] == []

    def test_train_without_examples(self, capsys):
        exit_code = self.run_main("train", "--kind", "route")

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 2
        assert output["results"]["route"]["status"] == "skipped"

    def test_promote_missing_version(self, capsys):
        exit_code = self.run_main("promote", "--kind", "route", "--version", "3")

        assert exit_code == 1
        assert "Fatal error" in capsys.readouterr().out

    def test_missing_config_path(self, capsys):
        exit_code = main(["--config", str(self.temp_dir / "nowhere"), "models"])

        assert exit_code == 1
        assert "Configuration path not found" in capsys.readouterr().out

    def test_verbose_sets_log_level(self):
        with patch.dict(os.environ, {}, clear=False):
            main(["--config", str(self.config_dir), "-v", "models"])
            assert os.environ["WINE_ROUTER_LOG_LEVEL"] == "DEBUG"
            assert settings.config_manager.get("logging.level") == "DEBUG"

    def test_keyboard_interrupt(self):
        with patch.object(WineRouterApp, "run", side_effect=KeyboardInterrupt):
            assert self.run_main("models") == 130


class TestWineRouterApp:
    def setup_method(self):
        self.original_manager = settings.config_manager
        self.temp_dir = Path(tempfile.mkdtemp())
        shutil.copy(DEFAULT_CONFIG_DIR / "default.yaml", self.temp_dir / "default.yaml")
        self.override = self.temp_dir / "override.yaml"
        self.override.write_text(json.dumps({
            "storage": {
                "models_dir": str(self.temp_dir / "models"),
                "examples_path": str(self.temp_dir / "examples.jsonl"),
                "knowledge_graph_path": str(self.temp_dir / "missing_graph.yaml"),
                "passages_path": str(self.temp_dir / "missing_passages.yaml"),
            }
        }))

    def teardown_method(self):
        settings.config_manager = self.original_manager
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_config_file_uses_sibling_directory(self):
        app = WineRouterApp(config_path=str(self.override))

        assert app.config_manager.config_dir == self.temp_dir
        assert app.config.storage.models_dir == str(self.temp_dir / "models")

    def test_build_is_idempotent(self):
        app = WineRouterApp(config_path=str(self.override))

        first = app.build().router
        assert app.build().router is first

    def test_missing_data_files_degrade(self):
        app = WineRouterApp(config_path=str(self.override)).build()

        assert app.retriever is None
        assert app.dictionaries.size() == 0

    def test_create_api(self):
        app = WineRouterApp(config_path=str(self.override))

        api = app.create_api()

        assert api.state.dependencies.router is app.router

    @pytest.mark.asyncio
    async def test_bundled_data_answers_region_grapes_from_graph(self):
        self.override.write_text(json.dumps({
            "storage": {
                "models_dir": str(self.temp_dir / "models"),
                "examples_path": str(self.temp_dir / "examples.jsonl"),
                "knowledge_graph_path": str(KNOWLEDGE_GRAPH),
                "passages_path": str(PASSAGES),
            }
        }))
        app = WineRouterApp(config_path=str(self.override)).build()

        result = await app.ask("What grapes are used in Tuscany of Italy?")

        assert app.retriever is not None
        assert result["path"] == "structured"
        assert "Sangiovese" in result["answer"]
