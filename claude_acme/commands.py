"""Commands arriving from the editor (tag clicks and chords)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .schema import PermissionMode
from .sessions import is_uuid


class Command(str, Enum):
    """Named commands the orchestrator handles."""

    SEND = "Send"
    PERMISSIONS = "Permissions"
    SESSIONS = "Sessions"
    RESET = "Reset"
    # Permissions surface
    SHOW = "Show"
    EDIT = "Edit"
    SAVE = "Save"
    MODE = "Mode"
    # Sessions surface
    LOAD = "Load"
    REFRESH = "Refresh"
    # Anything else goes back to the editor untouched
    PASSTHROUGH = "passthrough"


_MODE_NAMES = {mode.value for mode in PermissionMode}


@dataclass(frozen=True)
class CommandEvent:
    """A command with its optional free-text argument."""

    command: Command
    name: str
    argument: str = ""

    @classmethod
    def parse(cls, name: str, argument: str = "") -> "CommandEvent":
        """
        Classify raw command text.

        A permission-mode name becomes MODE and a bare session id becomes
        LOAD, both carrying the text as their argument.
        """
        text = name.strip()
        if text in _MODE_NAMES:
            return cls(Command.MODE, name, text)
        if is_uuid(text):
            return cls(Command.LOAD, name, text)

        try:
            command = Command(text)
        except ValueError:
            command = Command.PASSTHROUGH
        return cls(command, name, argument)
