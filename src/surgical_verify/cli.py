# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Command-line interface for surgical verification.

Every command prints JSON on stdout; logs go to stderr.

    surgical-verify graph [target]
    surgical-verify scope <target>
    surgical-verify watch
    surgical-verify serve [--transport stdio]
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, List, Optional

from surgical_verify import __version__
from surgical_verify.config import Config
from surgical_verify.logging_setup import CONSOLE_FORMAT, debug_enabled, setup_logging
from surgical_verify.service import VerificationService

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".surgical_verify.yml"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="surgical-verify",
        description="Dependency-aware verification scope for monorepos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--project-root",
        type=Path,
        default=None,
        help="Repository root that scan roots and aliases are relative to. Default: cwd",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Configuration file. Default: <project-root>/{CONFIG_FILENAME}",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Also write structured JSON logs to this directory",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    graph_parser = subparsers.add_parser(
        "graph", help="Print direct dependents of a file, or whole-graph statistics"
    )
    graph_parser.add_argument("target", nargs="?", default=None)

    scope_parser = subparsers.add_parser(
        "scope", help="Decide NARROW or FULL verification for a changed file"
    )
    scope_parser.add_argument("target")

    subparsers.add_parser("watch", help="Print a scope decision for every source file change")

    serve_parser = subparsers.add_parser("serve", help="Run the MCP server")
    serve_parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="Transport type for MCP server. Default: stdio",
    )

    return parser.parse_args(argv)


def configure_logging(args: argparse.Namespace) -> None:
    """Configure stderr logging (and the optional JSON file log) from arguments."""
    level = logging.DEBUG if args.verbose or debug_enabled() else logging.INFO
    if args.log_dir is not None:
        setup_logging(log_dir=args.log_dir, log_level=level, console_output=True)
    else:
        logging.basicConfig(level=level, format=CONSOLE_FORMAT, stream=sys.stderr)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


def _run_graph(service: VerificationService, target: Optional[str]) -> int:
    if target is None:
        _emit(service.get_graph_statistics())
        return 0
    try:
        _emit(service.analyze_impact(target))
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    return 0


def _run_scope(service: VerificationService, target: str) -> int:
    _emit(service.decide(target).to_dict())
    return 0


def _run_watch(service: VerificationService) -> int:
    def on_change(file_path: str) -> None:
        _emit(service.decide(file_path).to_dict())
        sys.stdout.flush()

    service.start_file_watcher(on_change=on_change)
    logger.info("Watching for changes, press Ctrl+C to stop")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Watch interrupted")
    return 0


def _run_serve(config: Config, project_root: Path, transport: str) -> int:
    from surgical_verify.mcp_server import SurgicalVerifyMCPServer

    server = SurgicalVerifyMCPServer(config=config, project_root=project_root)
    server.run(transport=transport)
    return 0


def run(argv: Optional[List[str]] = None) -> int:
    """Run the CLI and return the process exit status."""
    args = parse_args(argv)
    configure_logging(args)

    project_root = (args.project_root or Path.cwd()).resolve()
    config = Config(args.config or project_root / CONFIG_FILENAME)

    if args.command == "serve":
        return _run_serve(config, project_root, args.transport)

    service = VerificationService(config=config, project_root=str(project_root))
    try:
        if args.command == "graph":
            return _run_graph(service, args.target)
        if args.command == "scope":
            return _run_scope(service, args.target)
        return _run_watch(service)
    finally:
        service.shutdown()


def main() -> None:
    """Main entry point for the surgical-verify command."""
    sys.exit(run())


if __name__ == "__main__":
    main()
