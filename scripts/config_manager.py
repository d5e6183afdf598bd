#!/usr/bin/env python3
"""Inspect and validate wine router configuration from the command line.

Usage:
    python scripts/config_manager.py [--env production] validate
    python scripts/config_manager.py get inference.non_wine_threshold
    python scripts/config_manager.py export merged.json --format json
    python scripts/config_manager.py paths
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from wine_router.config import settings
from wine_router.config.utils import (
    export_config_to_file,
    get_config_value,
    get_environment,
    print_config_summary,
    validate_config,
)

STORAGE_KEYS = ("models_dir", "examples_path", "knowledge_graph_path", "passages_path")


def cmd_validate(args: argparse.Namespace) -> int:
    if not validate_config():
        print("Configuration validation failed")
        return 1
    print(f"Configuration for '{get_environment()}' is valid")
    return 0


def cmd_summary(args: argparse.Namespace) -> int:
    print_config_summary()
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    export_config_to_file(args.output, args.format)
    print(f"Wrote {args.format} configuration to {args.output}")
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    value = get_config_value(args.key)
    if value is None:
        print(f"{args.key} is not set")
        return 1
    print(f"{args.key}: {value}")
    return 0


def cmd_env(args: argparse.Namespace) -> int:
    print(f"Current environment: {get_environment()}")
    return 0


def cmd_paths(args: argparse.Namespace) -> int:
    """Report which storage locations exist; missing data files only disable features."""
    for key in STORAGE_KEYS:
        path = get_config_value(f"storage.{key}")
        marker = "ok" if path and Path(path).exists() else "missing"
        print(f"{key:<22} {marker:<8} {path}")
    return 0


COMMANDS = {
    "validate": cmd_validate,
    "summary": cmd_summary,
    "export": cmd_export,
    "get": cmd_get,
    "env": cmd_env,
    "paths": cmd_paths,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Wine question router configuration manager")
    parser.add_argument("--config-dir", help="Configuration directory (default: ./config)")
    parser.add_argument("--environment", "--env", "-e", help="Environment name to load")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("validate", help="Validate the merged configuration")
    subparsers.add_parser("summary", help="Print a configuration summary")

    export_parser = subparsers.add_parser("export", help="Write the merged configuration to a file")
    export_parser.add_argument("output", help="Output file path")
    export_parser.add_argument("--format", choices=["yaml", "json"], default="yaml")

    get_parser = subparsers.add_parser("get", help="Print one configuration value")
    get_parser.add_argument("key", help="Dot-notation key, e.g. inference.non_wine_threshold")

    subparsers.add_parser("env", help="Print the active environment")
    subparsers.add_parser("paths", help="Check the configured storage paths")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.environment or args.config_dir:
            settings.configure(config_dir=args.config_dir, environment=args.environment)
        return COMMANDS[args.command](args)
    except Exception as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
