"""
Per-directory document store.

Layout: <base_dir>/<sha256(working_dir)>/{context,permissions}.json

The directory key is a one-way hash of the absolute working-directory path,
so arbitrary paths map to flat, filesystem-safe names.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import ConfigError, DocumentCorruptError


class DocumentKind(str, Enum):
    """The two documents kept per directory key."""

    CONTEXT = "context"
    PERMISSIONS = "permissions"

    @property
    def filename(self) -> str:
        return f"{self.value}.json"


def resolve_key(path: str) -> str:
    """Map an absolute directory path to its stable directory key."""
    if not os.path.isabs(path):
        raise ValueError(f"directory path must be absolute: {path!r}")
    return hashlib.sha256(path.encode("utf-8")).hexdigest()


class KeyedStore:
    """
    JSON documents namespaced by directory key.

    Writes go to a temp file in the key directory and are renamed over the
    target, so an interrupted save leaves the previous generation intact.
    """

    def __init__(self, base_dir: Path):
        """
        Initialize the store.

        Args:
            base_dir: Root directory for all keys (created if missing)

        Raises:
            ConfigError: If the base directory cannot be created
        """
        self.base_dir = Path(base_dir)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"failed to create context directory {self.base_dir}: {e}") from e

    def resolve(self, path: str) -> str:
        return resolve_key(path)

    def key_dir(self, key: str) -> Path:
        return self.base_dir / key

    def path_for(self, key: str, kind: DocumentKind) -> Path:
        return self.key_dir(key) / kind.filename

    def load(self, key: str, kind: DocumentKind) -> dict[str, Any] | None:
        """
        Load a document.

        Returns:
            Parsed document, or None if it has never been saved

        Raises:
            DocumentCorruptError: If the file exists but is not a UTF-8 JSON object
            OSError: If the file exists but cannot be read
        """
        path = self.path_for(key, kind)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DocumentCorruptError(path, str(e)) from e

        if not isinstance(data, dict):
            raise DocumentCorruptError(path, f"expected a JSON object, got {type(data).__name__}")
        return data

    def save(self, key: str, kind: DocumentKind, document: dict[str, Any]) -> Path:
        """
        Atomically write a document.

        Returns:
            Path to the saved file
        """
        key_dir = self.key_dir(key)
        key_dir.mkdir(parents=True, exist_ok=True)
        target_path = key_dir / kind.filename

        fd, temp_path = tempfile.mkstemp(
            suffix=".tmp",
            prefix=f"{kind.value}_",
            dir=key_dir,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(temp_path, target_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

        return target_path

    def delete(self, key: str, kind: DocumentKind) -> bool:
        """
        Remove a document if present.

        Returns:
            True if a file was removed, False if there was nothing to remove
        """
        path = self.path_for(key, kind)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
