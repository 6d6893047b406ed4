"""Command line entry point: one message in, one reply out."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from . import client as client_mod
from . import get_version
from . import orchestrator as orchestrator_mod
from .config import configure_logging, load_config
from .errors import CompletionError, StorageError
from .memory import create_from_config as create_store

logger = logging.getLogger(__name__)

BLUE = "\x1b[34m"
RESET = "\x1b[0m"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memo-assistant",
        description="Ask the assistant something; it remembers a distilled summary between runs.",
    )
    parser.add_argument("message", nargs="+", help="Message to send (words are joined with spaces)")
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    parser.add_argument("--memory-path", default=None, help="Override memory.path from the config")
    parser.add_argument("--model", default=None, help="Override llm.model from the config")
    parser.add_argument(
        "--show-memory",
        action="store_true",
        help="Print the distilled memory to stderr after the reply",
    )
    parser.add_argument(
        "--reset-memory",
        action="store_true",
        help="Forget the stored memory before answering",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    message = " ".join(args.message)
    if not message.strip():
        parser.error("message cannot be empty")

    try:
        cfg = load_config(args.config)
    except RuntimeError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    if args.memory_path:
        cfg.setdefault("memory", {})["path"] = args.memory_path
    if args.model:
        cfg.setdefault("llm", {})["model"] = args.model
    configure_logging(cfg, verbose=args.verbose)

    store = create_store(cfg)
    try:
        if args.reset_memory:
            store.clear()
            logger.info("Cleared memory at %s", store.path)

        with client_mod.create_from_config(cfg) as client:
            orch = orchestrator_mod.create_from_config(cfg, client=client, store=store)
            result = orch.run(message, on_reply=lambda reply: print(reply, flush=True))
    except KeyboardInterrupt:
        print("interrupted; memory left unchanged", file=sys.stderr)
        return EXIT_INTERRUPTED
    except (CompletionError, StorageError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if result.distill_error is not None:
        print(f"warning: memory not updated: {result.distill_error}", file=sys.stderr)
    elif args.show_memory:
        print(f"{BLUE}{result.memory}{RESET}", file=sys.stderr)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
