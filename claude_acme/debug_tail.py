"""
Trace tailing of the assistant's debug logs.

While an invocation runs, the assistant appends to text files under
<claude_home>/debug/. Tool-usage lines from those files are forwarded to the
trace surface so the user can watch what the assistant is doing.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .surface import UISurface

logger = logging.getLogger(__name__)

IMPORTANT_PATTERNS = (
    "for tool: Read",
    "for tool: Write",
    "for tool: Edit",
    "for tool: Glob",
    "for tool: Grep",
    "for tool: Bash",
    "for tool: WebSearch",
    "for tool: WebFetch",
    "for tool: Task",
    "for tool: NotebookEdit",
    "for tool: MultiEdit",
    "tool_use",
)


def is_important(line: str) -> bool:
    return any(pattern in line for pattern in IMPORTANT_PATTERNS)


class DebugTailer:
    """
    Polls a debug directory and forwards new tool-usage lines.

    Files present at start are baselined at their current size; only content
    appended afterwards is forwarded. Partial trailing lines wait for their
    newline.
    """

    def __init__(
        self,
        debug_dir: Path,
        trace: UISurface,
        poll_interval: float = 0.05,
        idle_polls: int = 60,
    ):
        self.debug_dir = Path(debug_dir)
        self.trace = trace
        self.poll_interval = poll_interval
        self.idle_polls = idle_polls
        self._offsets: dict[Path, int] = {}
        self.total_lines = 0

    def _log_files(self) -> list[Path]:
        try:
            return sorted(p for p in self.debug_dir.iterdir() if p.suffix == ".txt")
        except (FileNotFoundError, NotADirectoryError):
            return []

    def snapshot(self) -> int:
        """Baseline existing files. Returns how many were found."""
        self._offsets = {}
        for path in self._log_files():
            try:
                self._offsets[path] = path.stat().st_size
            except OSError:
                continue
        return len(self._offsets)

    def _read_new(self, path: Path, offset: int) -> tuple[int, int]:
        """Forward complete lines after ``offset``. Returns (new offset, lines forwarded)."""
        try:
            with open(path, "rb") as f:
                f.seek(offset)
                data = f.read()
        except OSError as e:
            logger.debug(f"Skipping unreadable debug log {path}: {e}")
            return offset, 0

        end = data.rfind(b"\n")
        if end == -1:
            return offset, 0

        forwarded = 0
        for raw in data[: end + 1].splitlines():
            line = raw.decode("utf-8", errors="replace")
            if is_important(line):
                self.trace.append(f"{line}\n")
                forwarded += 1

        return offset + end + 1, forwarded

    def poll(self) -> bool:
        """One sweep over the directory. Returns True if any file grew."""
        grew = False
        for path in self._log_files():
            try:
                size = path.stat().st_size
            except OSError:
                continue

            offset = self._offsets.get(path)
            if offset is None:
                offset = 0
            elif size < offset:
                # Truncated or rotated; start over
                offset = 0
            if size == offset:
                self._offsets[path] = offset
                continue

            grew = True
            new_offset, lines = self._read_new(path, offset)
            self._offsets[path] = new_offset
            self.total_lines += lines

        return grew

    async def run(self, stop: asyncio.Event) -> int:
        """
        Tail until ``stop`` is set or the logs stay idle for too long.

        The stop event is checked between polls, never in the middle of
        forwarding a file. Polls run in a worker thread so reading a large
        burst of log output does not block the event loop.

        Returns:
            Total lines forwarded
        """
        existing = self.snapshot()
        self.trace.append(f"[TRACE] Monitoring debug directory with {existing} existing files\n")

        idle = 0
        while not stop.is_set():
            await asyncio.sleep(self.poll_interval)
            if await asyncio.to_thread(self.poll):
                idle = 0
                continue
            idle += 1
            if idle > self.idle_polls:
                seconds = self.idle_polls * self.poll_interval
                self.trace.append(
                    f"[TRACE] No new debug output for {seconds:g} seconds, read {self.total_lines} total lines\n"
                )
                return self.total_lines

        await asyncio.to_thread(self.poll)
        self.trace.append(f"[TRACE] Debug monitoring stopped, read {self.total_lines} total lines\n")
        return self.total_lines
