"""
Assistant session discovery.

The assistant writes one JSONL transcript per session to
<claude_home>/projects/<flattened cwd>/<session_id>.jsonl

Transcripts are only scanned for a summary, never fully parsed; they can be
large and individual lines can be very long.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "conversation"
PARSE_ERROR_SUMMARY = "conversation (parse error)"
SUMMARY_PREVIEW_CHARS = 50
TRANSCRIPT_SUFFIX = ".jsonl"

_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_SUMMARY_KEY = '"summary":"'
_CONTENT_KEY = '"content":"'
_USER_ROLE = '"role":"user"'


def is_uuid(value: str) -> bool:
    """True only for the canonical 36-character 8-4-4-4-12 hex form."""
    return bool(_UUID_RE.fullmatch(value))


def normalize_session_id(value: str) -> str:
    """Strip whitespace plus surrounding quotes and brackets from a selection."""
    return value.strip().strip("\"'[]")


def flatten_path(cwd: str) -> str:
    return cwd.replace("/", "-")


def _quoted_value(line: str, key: str) -> str | None:
    idx = line.find(key)
    if idx == -1:
        return None
    start = idx + len(key)
    end = line.find('"', start)
    if end == -1:
        return None
    return line[start:end]


def extract_summary(path: Path, max_line_bytes: int = 1024 * 1024) -> str:
    """
    Best-effort one-line summary of a transcript.

    Prefers the first non-empty "summary" field; falls back to the first user
    message content (truncated), then to a placeholder.
    """
    summary = DEFAULT_SUMMARY

    try:
        with open(path, "rb") as f:
            while True:
                raw = f.readline(max_line_bytes + 1)
                if not raw:
                    break
                if len(raw) > max_line_bytes and not raw.endswith(b"\n"):
                    logger.warning(f"Transcript line too long in {path.name}")
                    return PARSE_ERROR_SUMMARY

                line = raw.decode("utf-8", errors="replace")

                extracted = _quoted_value(line, _SUMMARY_KEY)
                if extracted:
                    return extracted

                if summary == DEFAULT_SUMMARY and _USER_ROLE in line:
                    content = _quoted_value(line, _CONTENT_KEY)
                    if content:
                        if len(content) > SUMMARY_PREVIEW_CHARS:
                            content = content[:SUMMARY_PREVIEW_CHARS] + "..."
                        summary = content
    except OSError as e:
        logger.warning(f"Could not read transcript {path}: {e}")
        return DEFAULT_SUMMARY

    return summary


@dataclass
class Session:
    """An assistant session discovered on disk."""

    id: str
    transcript_path: Path
    summary: str
    modified: datetime


class SessionLocator:
    """Scans transcript directories for resumable sessions."""

    def __init__(self, projects_dir: Path, max_line_bytes: int = 1024 * 1024):
        self.projects_dir = Path(projects_dir)
        self.max_line_bytes = max_line_bytes

    def project_dir(self, cwd: str) -> Path:
        return self.projects_dir / flatten_path(cwd)

    def _transcripts(self, project_dir: Path) -> list[tuple[float, Path]]:
        try:
            entries = list(project_dir.iterdir())
        except (FileNotFoundError, NotADirectoryError):
            return []

        found = []
        for entry in entries:
            if entry.suffix != TRANSCRIPT_SUFFIX or not is_uuid(entry.stem):
                continue
            try:
                mtime = entry.stat().st_mtime
            except OSError:
                continue
            found.append((mtime, entry))

        # Newest first; id breaks ties so ordering is deterministic
        found.sort(key=lambda item: item[1].stem)
        found.sort(key=lambda item: item[0], reverse=True)
        return found

    def list_sessions(self, project_dir: Path) -> list[Session]:
        """
        List sessions in a project directory, most recently modified first.

        A missing directory yields an empty list.
        """
        return [
            Session(
                id=path.stem,
                transcript_path=path,
                summary=extract_summary(path, self.max_line_bytes),
                modified=datetime.fromtimestamp(mtime, tz=timezone.utc),
            )
            for mtime, path in self._transcripts(project_dir)
        ]

    def most_recent(self, project_dir: Path) -> str | None:
        # Skips summary extraction; only ordering matters here
        transcripts = self._transcripts(project_dir)
        if not transcripts:
            return None
        return transcripts[0][1].stem

    def render_listing(self, cwd: str, sessions: list[Session]) -> str:
        lines = [f"# Claude Sessions for {cwd} - highlight line and click Load", ""]
        if not sessions:
            lines.append("No sessions found")
        lines += [f"[{session.id}] | {session.summary}" for session in sessions]
        return "\n".join(lines) + "\n"


@dataclass
class SessionScope:
    """
    Current-session state for one working directory.

    An explicit selection wins; otherwise the most recently modified
    transcript is resumed; with no transcripts the assistant starts fresh.
    """

    cwd: str
    selected_id: str | None = None

    def select(self, session_id: str) -> None:
        if not is_uuid(session_id):
            raise ValueError(f"Invalid UUID format: {session_id}")
        self.selected_id = session_id

    def clear(self) -> None:
        self.selected_id = None

    def current_id(self, locator: SessionLocator) -> str | None:
        if self.selected_id:
            return self.selected_id
        return locator.most_recent(locator.project_dir(self.cwd))

    def continuation_args(self, locator: SessionLocator) -> list[str]:
        session_id = self.current_id(locator)
        if session_id is None:
            return []
        return ["-r", session_id]
