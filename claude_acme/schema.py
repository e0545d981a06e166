"""
Persisted document models for claude-acme.

Pydantic models for the two per-directory JSON documents:
context.json (conversation history) and permissions.json (tool policy).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"


class PermissionMode(str, Enum):
    """Coarse autonomy policy passed as --permission-mode."""

    DEFAULT = "default"
    PLAN = "plan"
    ACCEPT_EDITS = "acceptEdits"
    BYPASS_PERMISSIONS = "bypassPermissions"


class Message(BaseModel):
    """A single conversation turn."""

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class ConversationContext(BaseModel):
    """Conversation history for one working directory."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[Message] = Field(default_factory=list)
    last_used: datetime = Field(
        default_factory=utcnow,
        alias="lastUsed",
        validation_alias=AliasChoices("lastUsed", "last_used"),
    )


class PermissionProfile(BaseModel):
    """
    Tool permission policy for one working directory.

    Tool lists keep insertion order and never hold duplicates. After any
    mutation a tool appears in at most one of the two lists.
    """

    model_config = ConfigDict(populate_by_name=True)

    allowed_tools: list[str] = Field(default_factory=list, alias="allowedTools")
    disallowed_tools: list[str] = Field(default_factory=list, alias="disallowedTools")
    permission_mode: PermissionMode | None = Field(default=None, alias="permissionMode")
    additional_dirs: list[str] = Field(default_factory=list, alias="additionalDirs")

    @property
    def effective_mode(self) -> PermissionMode:
        return self.permission_mode or PermissionMode.DEFAULT

    def allow(self, tool: str) -> None:
        if tool not in self.allowed_tools:
            self.allowed_tools.append(tool)
        self.disallowed_tools = [t for t in self.disallowed_tools if t != tool]

    def deny(self, tool: str) -> None:
        if tool not in self.disallowed_tools:
            self.disallowed_tools.append(tool)
        self.allowed_tools = [t for t in self.allowed_tools if t != tool]

    def forget(self, tool: str) -> None:
        self.allowed_tools = [t for t in self.allowed_tools if t != tool]
        self.disallowed_tools = [t for t in self.disallowed_tools if t != tool]

    def set_mode(self, mode: PermissionMode) -> None:
        # "default" is stored as an absent field
        self.permission_mode = None if mode == PermissionMode.DEFAULT else mode

    def to_document(self) -> dict:
        """Serialize for permissions.json, omitting empty fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_defaults=True)
