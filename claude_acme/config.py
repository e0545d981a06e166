"""
Configuration management for claude-acme.

Settings live in ~/.claude-acme/config.json. Environment variables (optionally
loaded from ~/.claude-acme/.env) override the file:

- CLAUDE_ACME_HOME: base directory for per-directory state
- CLAUDE_ACME_COMMAND: assistant command line (shell-split)
- CLAUDE_HOME: the assistant's own data directory (transcripts, debug logs)
"""

from __future__ import annotations

import json
import os
import shlex
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .errors import ConfigError
from .schema import PermissionMode

KNOWN_TOOLS: list[str] = [
    # File operations
    "Read",
    "Write",
    "Edit",
    "MultiEdit",
    "NotebookEdit",
    # Search
    "Glob",
    "Grep",
    # Shell
    "Bash",
    "BashOutput",
    "KillBash",
    # Web
    "WebSearch",
    "WebFetch",
    # Agent
    "Task",
    "TodoWrite",
    "ExitPlanMode",
    # Shell command patterns
    "Bash(git:*)",
    "Bash(mkdir:*)",
    "Bash(ls:*)",
    "Bash(cd:*)",
    "Bash(cp:*)",
    "Bash(mv:*)",
    "Bash(rm:*)",
    "Bash(chmod:*)",
]


def _home() -> Path:
    try:
        return Path.home()
    except RuntimeError as e:
        raise ConfigError(f"failed to get user home directory: {e}") from e


def default_base_dir() -> Path:
    return _home() / ".claude-acme"


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


@dataclass
class AcmeConfig:
    """
    Complete claude-acme configuration.

    Paths are stored as strings so the dataclass round-trips through JSON;
    use the ``*_path`` properties for Path objects.
    """

    base_dir: str = ""
    claude_home: str = ""
    assistant_command: list[str] = field(default_factory=lambda: ["claude"])
    debug_flag: str = "-d"

    # Seed profile when a directory has no permissions document yet
    default_allowed_tools: list[str] = field(default_factory=lambda: ["Read"])
    default_permission_mode: str = "acceptEdits"
    known_tools: list[str] = field(default_factory=lambda: list(KNOWN_TOOLS))

    # Debug log tailing
    tail_debug_logs: bool = True
    tail_poll_interval: float = 0.05
    tail_idle_polls: int = 60

    # Longest transcript line scanned for a summary
    max_line_bytes: int = 1024 * 1024

    def __post_init__(self) -> None:
        if not self.base_dir:
            self.base_dir = str(default_base_dir())
        if not self.claude_home:
            self.claude_home = str(_home() / ".claude")

        try:
            PermissionMode(self.default_permission_mode)
        except ValueError as e:
            raise ConfigError(f"invalid default_permission_mode: {self.default_permission_mode!r}") from e

    @property
    def base_path(self) -> Path:
        return Path(self.base_dir).expanduser()

    @property
    def claude_home_path(self) -> Path:
        return Path(self.claude_home).expanduser()

    @property
    def projects_dir(self) -> Path:
        return self.claude_home_path / "projects"

    @property
    def debug_dir(self) -> Path:
        return self.claude_home_path / "debug"

    @classmethod
    def load(cls, path: Path | None = None, env: dict[str, str] | None = None) -> "AcmeConfig":
        """
        Load configuration from file, then apply environment overrides.

        Args:
            path: Optional config file path. Defaults to ~/.claude-acme/config.json
            env: Environment mapping (default: os.environ after loading .env)

        Returns:
            AcmeConfig with file settings and overrides merged over defaults
        """
        if env is None:
            env_file = default_base_dir() / ".env"
            if env_file.exists():
                load_dotenv(env_file)
            env = dict(os.environ)

        if path is None:
            path = Path(env.get("CLAUDE_ACME_HOME") or default_base_dir()) / "config.json"

        data: dict[str, Any] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text())
            except json.JSONDecodeError as e:
                raise ConfigError(f"failed to parse config file {path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"config file {path} must contain a JSON object")

        if env.get("CLAUDE_ACME_HOME"):
            data["base_dir"] = env["CLAUDE_ACME_HOME"]
        if env.get("CLAUDE_HOME"):
            data["claude_home"] = env["CLAUDE_HOME"]
        if env.get("CLAUDE_ACME_COMMAND"):
            data["assistant_command"] = shlex.split(env["CLAUDE_ACME_COMMAND"])

        return cls(**_filter_dataclass_fields(data, cls))

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = self.base_path / "config.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)
