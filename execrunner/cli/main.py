"""Main CLI entry point for exec-runner."""

import argparse
import sys
from typing import Optional

from execrunner.registry import EXEC_RUN

from .commands import run_task, list_tasks


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the exec-runner CLI."""
    parser = argparse.ArgumentParser(
        prog='exec-runner',
        description='Run commands described by configuration documents'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Run command
    run_parser = subparsers.add_parser('run', help='Run a task document')
    run_parser.add_argument(
        'document',
        type=str,
        help='Path to task document YAML file'
    )
    run_parser.add_argument(
        '--task',
        type=str,
        default=EXEC_RUN,
        help=f'Runner identifier (default: {EXEC_RUN})'
    )
    run_parser.add_argument(
        '--format',
        choices=['json', 'yaml'],
        default='json',
        help='Output format for the update document'
    )
    run_parser.add_argument(
        '--kill-grace-ms',
        type=int,
        default=2000,
        help='Delay between terminate and kill when cancelled'
    )
    run_parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    run_parser.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress non-error output'
    )
    run_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )
    run_parser.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warning', 'error'],
        default='warning',
        help='Set log level'
    )

    subparsers.add_parser('tasks', help='List registered runner identifiers')

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == 'run':
        return run_task(parsed_args)
    elif parsed_args.command == 'tasks':
        return list_tasks(parsed_args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
