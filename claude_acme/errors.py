"""Exception types shared across claude-acme."""

from __future__ import annotations

from pathlib import Path


class ClaudeAcmeError(Exception):
    """Base class for claude-acme failures."""


class ConfigError(ClaudeAcmeError):
    """Startup configuration failed (home directory, base directory)."""


class DocumentCorruptError(ClaudeAcmeError):
    """A persisted JSON document exists but cannot be parsed."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"failed to parse {path}: {reason}")
        self.path = path
        self.reason = reason


class LaunchError(ClaudeAcmeError):
    """The assistant process could not be started.

    ``step`` names what failed: ``start``, ``stdin``, ``stdout`` or ``stderr``.
    """

    def __init__(self, step: str, reason: str):
        action = "error starting assistant" if step == "start" else f"error creating {step} pipe"
        super().__init__(f"{action}: {reason}")
        self.step = step
        self.reason = reason


class ProcessExitError(ClaudeAcmeError):
    """The assistant exited unsuccessfully or could not be waited on."""

    def __init__(self, returncode: int | None, reason: str | None = None):
        if reason is None:
            reason = f"exit status {returncode}"
        super().__init__(reason)
        self.returncode = returncode
