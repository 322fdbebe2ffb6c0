"""Run command implementation."""

import base64
import json
import logging
import signal
import sys
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict, TextIO
import yaml

from execrunner.context import CancelToken, TaskContext
from execrunner.exceptions import CommandFailedError, TaskError
from execrunner.exec.engine import EngineConfig
from execrunner.loader import DocumentLoader
from execrunner.registry import default_registry


logger = logging.getLogger(__name__)


def configure_logging(args: Namespace) -> None:
    """Set up logging from the CLI flags."""
    log_level = getattr(logging, args.log_level.upper())
    if args.debug:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.ERROR
    elif args.verbose:
        log_level = logging.DEBUG

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode('ascii')
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def write_update(update: Dict[str, Any], fmt: str, out: TextIO) -> None:
    """Print an update document; bytes become base64 in JSON and !!binary in YAML."""
    if fmt == 'yaml':
        yaml.safe_dump(update, out, default_flow_style=False, sort_keys=False)
    else:
        json.dump(update, out, indent=2, default=_json_default)
        out.write('\n')


def run_task(args: Namespace) -> int:
    """
    Load a document and run it with the selected runner.

    Returns:
        0 if the command succeeded, 1 if it failed, 2 if the document or
        task selection is invalid
    """
    configure_logging(args)

    document_path = Path(args.document)
    if not document_path.exists():
        logger.error(f"Document not found: {document_path}")
        return 2

    cancel = CancelToken()

    def handle_interrupt(signum, frame):
        logger.warning("Interrupted, cancelling task")
        cancel.cancel("interrupted")

    previous_handler = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        logger.info(f"Loading document: {document_path}")
        doc = DocumentLoader().load(document_path)

        registry = default_registry()
        config = EngineConfig(kill_grace_ms=args.kill_grace_ms)
        runner = registry.create(args.task, config=config)

        ctx = TaskContext(
            obj=doc,
            stdin=sys.stdin.buffer,
            stdout=sys.stdout.buffer,
            stderr=sys.stderr.buffer,
            cancel=cancel,
        )
        update = runner.run(ctx)
        sys.stdout.flush()
        write_update(update, args.format, sys.stdout)

        if update.get('success'):
            logger.info("Task completed successfully")
            return 0
        logger.info("Task command failed")
        return 1

    except CommandFailedError as e:
        logger.error(str(e))
        return e.exit_code
    except TaskError as e:
        logger.error(f"Task error: {e}")
        return e.exit_code
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    finally:
        signal.signal(signal.SIGINT, previous_handler)


def list_tasks(args: Namespace) -> int:
    """Print the registered runner identifiers."""
    for name in default_registry().list_runners():
        print(name)
    return 0
