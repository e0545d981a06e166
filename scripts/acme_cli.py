#!/usr/bin/env python3
"""
Terminal launcher for claude-acme.

Runs one command against the current directory, with replies streamed to
stdout and trace output to stderr.

Usage:
    python scripts/acme_cli.py Send "explain the build setup"
    echo "explain the build setup" | python scripts/acme_cli.py Send
    python scripts/acme_cli.py Permissions
    python scripts/acme_cli.py Save "+Bash
    -WebFetch"
    python scripts/acme_cli.py plan
    python scripts/acme_cli.py Sessions
    python scripts/acme_cli.py Load 123e4567-e89b-12d3-a456-426614174000
    python scripts/acme_cli.py Reset
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Add project root to path for claude_acme imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from claude_acme import AcmeConfig, BufferSurface, Command, CommandEvent, Orchestrator, StreamSurface
from claude_acme.errors import ConfigError


async def run(command: str, argument: str, verbose: bool) -> int:
    config = AcmeConfig.load()
    cwd = os.getcwd()

    conversation = StreamSurface(sys.stdout)
    trace = StreamSurface(sys.stderr, prefix="trace: ") if verbose else None

    event = CommandEvent.parse(command, argument)
    permissions_surface = None
    if event.command == Command.SAVE:
        # Save reads the edit buffer from the permissions surface
        permissions_surface = StreamSurface(sys.stdout, text=argument)

    orchestrator = Orchestrator(
        config,
        cwd,
        conversation=conversation,
        prompt=BufferSurface(),
        trace=trace,
        permissions_surface=permissions_surface,
    )

    if not await orchestrator.dispatch(event):
        print(f"Unknown command: {command}", file=sys.stderr)
        return 2
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Drive the claude CLI with per-directory context")
    parser.add_argument("command", help="Send, Permissions, Edit, Save, Sessions, Load, Reset or a mode name")
    parser.add_argument("argument", nargs="?", default="", help="Command argument (prompt text, edits, session id)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show trace output and debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    argument = args.argument
    if args.command == Command.SEND.value and not argument and not sys.stdin.isatty():
        argument = sys.stdin.read()

    try:
        sys.exit(asyncio.run(run(args.command, argument, args.verbose)))
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
