"""
Command Line Interface

    cc-caffeine caffeinate [--session-id ID]    enable caffeine for a session
    cc-caffeine uncaffeinate [--session-id ID]  disable caffeine for a session
    cc-caffeine server                          run the caffeine server
    cc-caffeine status                          show server state and sessions
    cc-caffeine reset                           discard every recorded session
    cc-caffeine version                         show the installed version
    cc-caffeine mcp                             serve the MCP tools over stdio

Without --session-id, caffeinate and uncaffeinate read the hook JSON document
(``{"session_id": "..."}``) from stdin.
"""

import logging
import sys
from argparse import ArgumentParser, Namespace, RawDescriptionHelpFormatter
from typing import Sequence, TextIO

from .config import CaffeineConfig
from .daemon import run_server
from .errors import CaffeineError
from .service import CaffeineService
from .system_utils import configure_logging
from .utils.session_utils import parse_hook_input, validate_session_id

logger = logging.getLogger(__name__)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="cc-caffeine",
        description=__doc__,
        formatter_class=RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    for name, help_text in (
        ("caffeinate", "Enable caffeine for a session"),
        ("uncaffeinate", "Disable caffeine for a session"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--session-id",
            metavar="ID",
            help="Session id (default: read hook JSON from stdin)",
        )
        if name == "caffeinate":
            sub.add_argument(
                "--project-dir",
                metavar="PATH",
                help="Project directory recorded with the session [env: CLAUDE_PROJECT_DIR]",
            )

    subparsers.add_parser("server", help="Run the caffeine server")
    subparsers.add_parser("status", help="Show server status and active sessions")
    subparsers.add_parser("reset", help="Discard all sessions (repairs a corrupt ledger)")
    subparsers.add_parser("version", help="Show version information")
    subparsers.add_parser("mcp", help="Run the MCP server over stdio")
    return parser


def read_session_id(args: Namespace, stdin: TextIO) -> str:
    if args.session_id:
        return validate_session_id(args.session_id)
    return parse_hook_input(stdin.read())["session_id"]


def handle_caffeinate(args: Namespace, service: CaffeineService, stdin: TextIO) -> int:
    session_id = read_session_id(args, stdin)
    result = service.caffeinate(session_id, args.project_dir)
    print(f"Enabled caffeine for session: {session_id}", file=sys.stderr)
    if result.cleaned_count:
        print(f"Cleaned up {result.cleaned_count} expired sessions", file=sys.stderr)
    return 0


def handle_uncaffeinate(args: Namespace, service: CaffeineService, stdin: TextIO) -> int:
    session_id = read_session_id(args, stdin)
    result = service.uncaffeinate(session_id)
    print(f"Disabled caffeine for session: {session_id}", file=sys.stderr)
    if result.cleaned_count:
        print(f"Cleaned up {result.cleaned_count} expired sessions", file=sys.stderr)
    return 0


def handle_status(service: CaffeineService) -> int:
    print(service.status_text())
    return 0


def handle_reset(service: CaffeineService) -> int:
    discarded = service.reset()
    print(f"Session ledger reset ({discarded} sessions discarded)", file=sys.stderr)
    return 0


def handle_version() -> int:
    from . import __version__

    print(f"cc-caffeine {__version__}")
    return 0


def handle_mcp() -> int:
    from . import server

    server.main()
    return 0


def main(argv: Sequence[str] | None = None, stdin: TextIO | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = CaffeineConfig.from_env()

    if args.command is None:
        parser.print_usage(sys.stderr)
        return 1
    if args.command == "version":
        return handle_version()
    if args.command == "server":
        return run_server(config)
    if args.command == "mcp":
        return handle_mcp()

    configure_logging(config.log_level)
    service = CaffeineService(config)
    try:
        if args.command == "caffeinate":
            return handle_caffeinate(args, service, stdin or sys.stdin)
        if args.command == "uncaffeinate":
            return handle_uncaffeinate(args, service, stdin or sys.stdin)
        if args.command == "status":
            return handle_status(service)
        return handle_reset(service)
    except (CaffeineError, OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
