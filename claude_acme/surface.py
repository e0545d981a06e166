"""UI surfaces: the text sinks the orchestrator reads from and writes to."""

from __future__ import annotations

import sys
import threading
from typing import Protocol, TextIO, runtime_checkable


@runtime_checkable
class UISurface(Protocol):
    """
    An editor window body, or anything that behaves like one.

    ``append`` must be visible to a later ``read``.
    """

    def clear(self) -> None: ...

    def write(self, text: str) -> None:
        """Replace the whole body with ``text``."""
        ...

    def append(self, text: str) -> None: ...

    def read(self) -> str: ...


class BufferSurface:
    """In-memory surface."""

    def __init__(self, text: str = ""):
        self._parts: list[str] = [text] if text else []

    def clear(self) -> None:
        self._parts = []

    def write(self, text: str) -> None:
        self._parts = [text]

    def append(self, text: str) -> None:
        self._parts.append(text)

    def read(self) -> str:
        return "".join(self._parts)


class StreamSurface(BufferSurface):
    """
    Surface that also echoes written text to a terminal stream.

    ``text`` seeds the body without echoing it.
    """

    def __init__(self, stream: TextIO | None = None, prefix: str = "", text: str = ""):
        super().__init__(text)
        self.stream = stream or sys.stdout
        self.prefix = prefix

    def write(self, text: str) -> None:
        super().write(text)
        self._echo(text)

    def append(self, text: str) -> None:
        super().append(text)
        self._echo(text)

    def _echo(self, text: str) -> None:
        if self.prefix:
            text = "".join(self.prefix + line for line in text.splitlines(keepends=True))
        self.stream.write(text)
        self.stream.flush()


class SerializedSurface:
    """
    Wraps a surface shared by several writers.

    Each operation holds a lock, so concurrent appends never interleave.
    """

    def __init__(self, inner: UISurface):
        self.inner = inner
        self._lock = threading.Lock()

    def clear(self) -> None:
        with self._lock:
            self.inner.clear()

    def write(self, text: str) -> None:
        with self._lock:
            self.inner.write(text)

    def append(self, text: str) -> None:
        with self._lock:
            self.inner.append(text)

    def read(self) -> str:
        with self._lock:
            return self.inner.read()


def serialized(surface: UISurface | None) -> UISurface | None:
    if surface is None or isinstance(surface, SerializedSurface):
        return surface
    return SerializedSurface(surface)
