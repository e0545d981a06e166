"""
Assistant subprocess invocation.

One invocation moves through:

    IDLE -> STARTED -> DRAINING -> WAITED -> SUCCEEDED | FAILED

While DRAINING, three tasks run together: one feeds the prompt to stdin and
closes it, two drain stdout and stderr line by line. The process is only
waited on after both drains have reached EOF. Waiting earlier, or writing
the whole prompt before reading, can deadlock on full pipe buffers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from functools import partial

from .config import AcmeConfig
from .debug_tail import DebugTailer
from .errors import LaunchError, ProcessExitError
from .surface import UISurface, serialized

logger = logging.getLogger(__name__)

DEBUG_PREFIX = "[DEBUG] "
READ_CHUNK_SIZE = 64 * 1024


class InvocationState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    DRAINING = "draining"
    WAITED = "waited"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class InvocationResult:
    """Outcome of one assistant run."""

    response_text: str = ""
    error_text: str = ""
    exit_error: ProcessExitError | None = None
    state: InvocationState = InvocationState.IDLE
    returncode: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == InvocationState.SUCCEEDED


def is_diagnostic(line: str) -> bool:
    return line.startswith(DEBUG_PREFIX)


def _decode(raw: bytes | bytearray) -> str:
    line = bytes(raw).decode("utf-8", errors="replace")
    if line.endswith("\r"):
        line = line[:-1]
    return line


async def iter_lines(stream: asyncio.StreamReader, chunk_size: int = READ_CHUNK_SIZE) -> AsyncIterator[str]:
    """
    Yield lines from a stream until EOF, without trailing newlines.

    Reads in chunks so a single very long line never stalls the drain.
    """
    buffer = bytearray()
    while True:
        chunk = await stream.read(chunk_size)
        if not chunk:
            break
        buffer.extend(chunk)

        start = 0
        while True:
            end = buffer.find(b"\n", start)
            if end == -1:
                break
            yield _decode(buffer[start:end])
            start = end + 1
        del buffer[:start]

    if buffer:
        yield _decode(buffer)


def tailer_for(config: AcmeConfig, trace: UISurface) -> DebugTailer:
    return DebugTailer(
        config.debug_dir,
        trace,
        poll_interval=config.tail_poll_interval,
        idle_polls=config.tail_idle_polls,
    )


class AssistantInvoker:
    """Runs the assistant CLI for one prompt at a time."""

    def __init__(
        self,
        command: list[str],
        debug_flag: str = "-d",
        cwd: str | None = None,
        tailer_factory: Callable[[UISurface], DebugTailer] | None = None,
    ):
        """
        Args:
            command: Program and any fixed leading arguments (e.g. ["claude"])
            debug_flag: Flag that makes the assistant emit [DEBUG] lines
            cwd: Working directory for the process (default: inherit)
            tailer_factory: Builds a DebugTailer for the trace surface, if any
        """
        self.command = list(command)
        self.debug_flag = debug_flag
        self.cwd = cwd
        self.tailer_factory = tailer_factory

    @classmethod
    def from_config(cls, config: AcmeConfig, cwd: str | None = None) -> "AssistantInvoker":
        tailer_factory = partial(tailer_for, config) if config.tail_debug_logs else None
        return cls(config.assistant_command, config.debug_flag, cwd=cwd, tailer_factory=tailer_factory)

    def build_args(self, permission_args: list[str], continuation_args: list[str]) -> list[str]:
        """Full argv: program, single-prompt mode, debug, session flags, permission flags."""
        args = [*self.command, "-p"]
        if self.debug_flag:
            args.append(self.debug_flag)
        return args + continuation_args + permission_args

    def _transition(self, result: InvocationResult, state: InvocationState) -> None:
        logger.debug(f"Invocation {result.state.value} -> {state.value}")
        result.state = state

    async def _start(self, args: list[str]) -> asyncio.subprocess.Process:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            raise LaunchError("start", str(e)) from e

        for step, stream in (("stdin", proc.stdin), ("stdout", proc.stdout), ("stderr", proc.stderr)):
            if stream is None:
                proc.kill()
                await proc.wait()
                raise LaunchError(step, "stream not available")

        return proc

    async def _feed(self, stdin: asyncio.StreamWriter, prompt: str) -> None:
        try:
            stdin.write(prompt.encode("utf-8"))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            # The exit status reports why the assistant stopped reading
            logger.warning(f"Assistant closed stdin before reading the full prompt: {e}")
        finally:
            stdin.close()
            try:
                await stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError) as e:
                logger.debug(f"stdin already closed: {e}")

    async def _drain(
        self,
        stream: asyncio.StreamReader,
        collected: list[str],
        sink: UISurface | None,
        trace: UISurface | None,
    ) -> None:
        async for line in iter_lines(stream):
            if is_diagnostic(line):
                if trace is not None:
                    trace.append(f"{line}\n")
                continue
            collected.append(line)
            if sink is not None:
                sink.append(f"{line}\n")

    async def invoke(
        self,
        prompt: str,
        args: list[str],
        primary: UISurface,
        trace: UISurface | None = None,
    ) -> InvocationResult:
        """
        Run the assistant once.

        Args:
            prompt: Full prompt text, written to stdin
            args: Complete argv (see build_args)
            primary: Receives response lines as they arrive
            trace: Receives [DEBUG] lines and tailed debug-log lines

        Returns:
            InvocationResult in state SUCCEEDED or FAILED

        Raises:
            LaunchError: If the process or one of its pipes cannot be set up
        """
        result = InvocationResult()
        primary = serialized(primary)
        trace = serialized(trace)

        logger.debug(f"Executing {args}")
        proc = await self._start(args)
        self._transition(result, InvocationState.STARTED)

        reply_lines: list[str] = []
        error_lines: list[str] = []

        stop_tail = asyncio.Event()
        tail_task: asyncio.Task | None = None
        if trace is not None and self.tailer_factory is not None:
            tail_task = asyncio.create_task(self.tailer_factory(trace).run(stop_tail))

        self._transition(result, InvocationState.DRAINING)
        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._feed(proc.stdin, prompt))
                tg.create_task(self._drain(proc.stdout, reply_lines, primary, trace))
                tg.create_task(self._drain(proc.stderr, error_lines, None, trace))
        except BaseException:
            if proc.returncode is None:
                proc.kill()
            await proc.wait()
            raise
        finally:
            stop_tail.set()
            if tail_task is not None:
                await tail_task

        result.response_text = "\n".join(reply_lines)
        result.error_text = "\n".join(error_lines)

        try:
            result.returncode = await proc.wait()
        except Exception as e:
            result.exit_error = ProcessExitError(None, f"wait failed: {e}")
        self._transition(result, InvocationState.WAITED)

        if result.exit_error is None and result.returncode != 0:
            result.exit_error = ProcessExitError(result.returncode)

        if result.exit_error is not None:
            self._transition(result, InvocationState.FAILED)
            logger.warning(f"Assistant failed: {result.exit_error}")
        else:
            self._transition(result, InvocationState.SUCCEEDED)

        return result
