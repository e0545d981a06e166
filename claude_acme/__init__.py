"""claude-acme: drive the claude CLI from an editor window.

Keeps per-directory conversation history and tool-permission policy under
~/.claude-acme/<sha256(cwd)>/ and streams each reply back to the editor.
"""

__version__ = "0.1.0"

from .commands import Command, CommandEvent
from .config import AcmeConfig
from .context_manager import ContextManager
from .errors import (
    ClaudeAcmeError,
    ConfigError,
    DocumentCorruptError,
    LaunchError,
    ProcessExitError,
)
from .invoker import AssistantInvoker, InvocationResult, InvocationState
from .keyed_store import DocumentKind, KeyedStore, resolve_key
from .orchestrator import Orchestrator
from .permissions import EditBatch, PermissionModel, compute_disallowed, parse_edits
from .schema import ConversationContext, Message, PermissionMode, PermissionProfile, Role
from .sessions import Session, SessionLocator, SessionScope, is_uuid
from .surface import BufferSurface, SerializedSurface, StreamSurface, UISurface

__all__ = [
    # Store & documents
    "KeyedStore",
    "DocumentKind",
    "resolve_key",
    "ConversationContext",
    "Message",
    "Role",
    "PermissionProfile",
    "PermissionMode",
    # Components
    "ContextManager",
    "PermissionModel",
    "EditBatch",
    "parse_edits",
    "compute_disallowed",
    "SessionLocator",
    "SessionScope",
    "Session",
    "is_uuid",
    "AssistantInvoker",
    "InvocationResult",
    "InvocationState",
    # Orchestration
    "Orchestrator",
    "Command",
    "CommandEvent",
    "UISurface",
    "BufferSurface",
    "StreamSurface",
    "SerializedSurface",
    # Config & errors
    "AcmeConfig",
    "ClaudeAcmeError",
    "ConfigError",
    "DocumentCorruptError",
    "LaunchError",
    "ProcessExitError",
]
