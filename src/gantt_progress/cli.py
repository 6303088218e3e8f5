"""Command-line entrypoint: roll up a task file or serve the HTTP API."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import ValidationError

from .config import (
    get_log_level,
    get_new_child_defaults,
    get_propagate_to_ancestors,
    load_engine_config,
)
from .io_utils import _load_task_records
from .task_tree import GanttSession, MutationEventRouter, TaskAdapter


def _configure_logging(level: str = 'INFO') -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            '<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | '
            '<level>{level: <8}</level> | '
            '<cyan>{module}</cyan>:<cyan>{line}</cyan> - '
            '{message}'
        ),
    )


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _load_config(args: argparse.Namespace) -> dict[str, Any]:
    config, err = load_engine_config(_resolve_project_dir(args.project_dir))
    if err:
        logger.warning('Ignoring unreadable config: {}', err)
    _configure_logging(args.log_level or get_log_level(config))
    return config


def _rollup(args: argparse.Namespace) -> int:
    config = _load_config(args)
    propagate = get_propagate_to_ancestors(config) if args.propagate is None else args.propagate
    path = Path(args.file).expanduser()
    if not path.exists():
        sys.stderr.write(f'File not found: {path}\n')
        return 1
    try:
        records = _load_task_records(path)
        session = GanttSession()
        adapter = TaskAdapter()
        adapter.load(session.store, records)
    except (ValueError, ValidationError) as exc:
        sys.stderr.write(f'{exc}\n')
        return 1

    with MutationEventRouter(
        session,
        propagate=propagate,
        child_defaults=get_new_child_defaults(config),
    ):
        state = session.get_state()
    sys.stdout.write(json.dumps(state, indent=2) + '\n')
    return 0


def _serve(args: argparse.Namespace) -> int:
    config = _load_config(args)
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'gantt-progress[server]'\n")
        return 1

    from .server import create_app

    app = create_app(project_dir=_resolve_project_dir(args.project_dir), config=config)
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Gantt summary-progress engine')
    parser.add_argument('--project-dir', default=None, help='Project directory holding .gantt_progress/ (default: cwd)')
    parser.add_argument('--log-level', default=None, help='Override the configured log level')
    subparsers = parser.add_subparsers(dest='command', required=True)

    rollup = subparsers.add_parser('rollup', help='Load a task file and print corrected summary progress')
    rollup.add_argument('file', help='YAML/JSON file with a list of tasks (or {"tasks": [...]})')
    propagate = rollup.add_mutually_exclusive_group()
    propagate.add_argument('--propagate', dest='propagate', action='store_true', default=None,
                           help='Also refresh every summary ancestor')
    propagate.add_argument('--no-propagate', dest='propagate', action='store_false',
                           help='Only refresh the nearest summary')
    rollup.set_defaults(func=_rollup)

    serve = subparsers.add_parser('serve', help='Start the HTTP API')
    serve.add_argument('--host', default='127.0.0.1')
    serve.add_argument('--port', default=8000, type=int)
    serve.set_defaults(func=_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    return int(handler(args) or 0)


if __name__ == '__main__':
    raise SystemExit(main())
