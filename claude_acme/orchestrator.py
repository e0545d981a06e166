"""
Command handling for one working directory.

Wires the store, context manager, permission model, session locator and
invoker together behind a table of command handlers. Editor adapters feed
CommandEvents to ``dispatch``; unhandled commands are returned to them.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from .commands import Command, CommandEvent
from .config import AcmeConfig
from .context_manager import HISTORY_SEPARATOR, ContextManager
from .errors import ClaudeAcmeError
from .invoker import AssistantInvoker, InvocationResult
from .keyed_store import KeyedStore
from .permissions import PermissionModel
from .schema import PermissionMode
from .sessions import SessionLocator, SessionScope, is_uuid, normalize_session_id
from .surface import UISurface, serialized

logger = logging.getLogger(__name__)

PROMPT_HEADER = "USER: [Send]"
EMPTY_PROMPT_NOTICE = "Prompt window is empty. Please enter your request first.\n"

Handler = Callable[[CommandEvent], Awaitable[None]]

_PERMISSION_COMMANDS = {Command.PERMISSIONS, Command.SHOW, Command.EDIT, Command.SAVE, Command.MODE}
_SESSION_COMMANDS = {Command.SESSIONS, Command.REFRESH, Command.LOAD}


def extract_user_input(body: str) -> str:
    """The text after the last prompt header, or the whole body if there is none."""
    _, header, tail = body.rpartition(PROMPT_HEADER)
    return (tail if header else body).strip()


class Orchestrator:
    """
    Handles editor commands for one working directory.

    Surfaces default to the conversation surface when not given separately.
    When the prompt surface is the conversation surface, the user types below
    the last prompt header and the reply is appended in place.
    """

    def __init__(
        self,
        config: AcmeConfig,
        cwd: str,
        conversation: UISurface,
        prompt: UISurface | None = None,
        trace: UISurface | None = None,
        permissions_surface: UISurface | None = None,
        sessions_surface: UISurface | None = None,
        invoker: AssistantInvoker | None = None,
        store: KeyedStore | None = None,
    ):
        self.config = config
        self.cwd = cwd
        self.store = store or KeyedStore(config.base_path)
        self.dir_key = self.store.resolve(cwd)
        self.contexts = ContextManager(self.store)
        self.permissions = PermissionModel(self.store, config)
        self.locator = SessionLocator(config.projects_dir, config.max_line_bytes)
        self.invoker = invoker or AssistantInvoker.from_config(config, cwd=cwd)
        self.scope = SessionScope(cwd)

        self.conversation = serialized(conversation)
        self.prompt = serialized(prompt) if prompt is not None else self.conversation
        self.trace = serialized(trace)
        self.permissions_surface = serialized(permissions_surface) or self.conversation
        self.sessions_surface = serialized(sessions_surface) or self.conversation

        self._handlers: dict[Command, Handler] = {
            Command.SEND: self.send,
            Command.PERMISSIONS: self.show_permissions,
            Command.SHOW: self.show_permissions,
            Command.EDIT: self.edit_permissions,
            Command.SAVE: self.save_permissions,
            Command.MODE: self.set_mode,
            Command.SESSIONS: self.list_sessions,
            Command.REFRESH: self.list_sessions,
            Command.LOAD: self.load_session,
            Command.RESET: self.reset,
        }

    @property
    def shared_prompt(self) -> bool:
        return self.prompt is self.conversation

    def open(self) -> None:
        """Put the initial prompt header on an empty conversation surface."""
        if not self.conversation.read():
            self.conversation.append(f"{PROMPT_HEADER}\n")

    def _surface_for(self, command: Command) -> UISurface:
        if command in _PERMISSION_COMMANDS:
            return self.permissions_surface
        if command in _SESSION_COMMANDS:
            return self.sessions_surface
        return self.conversation

    async def dispatch(self, event: CommandEvent) -> bool:
        """
        Run the handler for an event.

        Returns:
            False for pass-through commands the caller should hand back to
            the editor, True otherwise
        """
        handler = self._handlers.get(event.command)
        if handler is None:
            return False

        try:
            await handler(event)
        except (ClaudeAcmeError, OSError) as e:
            logger.error(f"{event.command.value} failed: {e}")
            self._surface_for(event.command).append(f"\n[Error: {e}]\n")
        return True

    # -- Send ------------------------------------------------------------

    async def send(self, event: CommandEvent) -> None:
        text = event.argument.strip() or extract_user_input(self.prompt.read())
        if not text:
            self.conversation.append(EMPTY_PROMPT_NOTICE)
            return

        # Load everything first so a corrupt document leaves the prompt in place
        full_prompt, args = self._prepare(text)

        if self.shared_prompt and not event.argument.strip():
            self.conversation.append("\n\nCLAUDE:\n")
        else:
            if not self.shared_prompt:
                self.prompt.clear()
            self.conversation.append(f"\nUSER:\n{text}\n\nCLAUDE:\n")

        await self._run(text, full_prompt, args)

    async def send_prompt(self, text: str) -> InvocationResult:
        """
        Run one user turn through the assistant.

        History is only extended when the assistant exits successfully; a
        failed turn leaves the stored context untouched.
        """
        full_prompt, args = self._prepare(text)
        return await self._run(text, full_prompt, args)

    def _prepare(self, text: str) -> tuple[str, list[str]]:
        profile = self.permissions.load(self.dir_key)
        full_prompt = self.contexts.build_prompt(self.dir_key, text)
        args = self.invoker.build_args(
            self.permissions.arguments(profile),
            self.scope.continuation_args(self.locator),
        )
        return full_prompt, args

    async def _run(self, text: str, full_prompt: str, args: list[str]) -> InvocationResult:
        if self.trace is not None:
            self.trace.append(f"Executing claude with args: {args}\n")

        result = await self.invoker.invoke(full_prompt, args, self.conversation, self.trace)

        if not result.succeeded:
            message = f"\n[Error: {result.exit_error}]\n"
            if result.error_text:
                message += f"Claude CLI Error Output:\n{result.error_text}\n"
            self.conversation.append(message)
            return result

        self.conversation.append(f"\n{HISTORY_SEPARATOR}\n\n{PROMPT_HEADER}\n")
        self.contexts.record_exchange(self.dir_key, text, result.response_text.strip())
        return result

    # -- Permissions -----------------------------------------------------

    async def show_permissions(self, event: CommandEvent) -> None:
        profile = self.permissions.load(self.dir_key)
        self.permissions_surface.write(self.permissions.render_current(self.cwd, profile))

    async def edit_permissions(self, event: CommandEvent) -> None:
        profile = self.permissions.load(self.dir_key)
        self.permissions_surface.write(self.permissions.render_edit(profile))

    async def save_permissions(self, event: CommandEvent) -> None:
        content = self.permissions_surface.read()
        profile = self.permissions.apply_edits(self.dir_key, content)
        self.permissions_surface.write(self.permissions.render_current(self.cwd, profile))
        self.permissions_surface.append("\n✓ Permissions updated successfully!\n")

    async def set_mode(self, event: CommandEvent) -> None:
        try:
            mode = PermissionMode(event.argument.strip())
        except ValueError:
            self.permissions_surface.append(f"\nUnknown permission mode: {event.argument}\n")
            return
        profile = self.permissions.set_mode(self.dir_key, mode)
        self.permissions_surface.write(self.permissions.render_current(self.cwd, profile))

    # -- Sessions --------------------------------------------------------

    async def list_sessions(self, event: CommandEvent) -> None:
        sessions = self.locator.list_sessions(self.locator.project_dir(self.cwd))
        self.sessions_surface.write(self.locator.render_listing(self.cwd, sessions))

    async def load_session(self, event: CommandEvent) -> None:
        session_id = normalize_session_id(event.argument)
        if not session_id:
            self.sessions_surface.append("\nUsage: select a session id and run Load\n")
            return
        if not is_uuid(session_id):
            self.sessions_surface.append(f"\nInvalid UUID format: {session_id}\n")
            return

        self.scope.select(session_id)
        logger.info(f"Selected session {session_id}")
        (self.trace or self.sessions_surface).append(f"Loaded session {session_id}\n")

    # -- Reset -----------------------------------------------------------

    async def reset(self, event: CommandEvent) -> None:
        self.contexts.clear_context(self.dir_key)
        self.scope.clear()
        self.conversation.append(f"Cleared Claude context for directory: {self.cwd}\n")
