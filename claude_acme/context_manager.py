"""
Conversation history and prompt assembly.

History is replayed to the assistant as a single linear prompt; the exact
shape of that text is what the assistant reads on stdin.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from .errors import DocumentCorruptError
from .keyed_store import DocumentKind, KeyedStore
from .schema import ConversationContext, Message, Role, utcnow

logger = logging.getLogger(__name__)

ROLE_LABELS: dict[Role, str] = {
    Role.USER: "USER",
    Role.ASSISTANT: "CLAUDE",
}

HISTORY_SEPARATOR = "===================="


class ContextManager:
    """
    Owns the ordered conversation history of each directory key.

    Every turn is retained; there is no deduplication or trimming.
    """

    def __init__(self, store: KeyedStore):
        self.store = store

    def load_context(self, dir_key: str) -> ConversationContext:
        data = self.store.load(dir_key, DocumentKind.CONTEXT)
        if data is None:
            return ConversationContext()
        try:
            return ConversationContext.model_validate(data)
        except ValidationError as e:
            raise DocumentCorruptError(self.store.path_for(dir_key, DocumentKind.CONTEXT), str(e)) from e

    def save_context(self, dir_key: str, context: ConversationContext) -> None:
        context.last_used = utcnow()
        self.store.save(dir_key, DocumentKind.CONTEXT, context.model_dump(mode="json", by_alias=True))

    def add_message(self, dir_key: str, role: Role, content: str) -> None:
        context = self.load_context(dir_key)
        context.messages.append(Message(role=role, content=content))
        self.save_context(dir_key, context)

    def record_exchange(self, dir_key: str, prompt: str, reply: str) -> None:
        """Append a user turn and the assistant's reply in one save."""
        context = self.load_context(dir_key)
        context.messages.append(Message(role=Role.USER, content=prompt))
        context.messages.append(Message(role=Role.ASSISTANT, content=reply))
        self.save_context(dir_key, context)
        logger.debug(f"Recorded exchange for {dir_key[:12]} ({len(context.messages)} messages)")

    def build_prompt(self, dir_key: str, new_user_text: str) -> str:
        """
        Render stored history plus a new user turn.

        Given history [(user, "a"), (assistant, "b")] and new text "c":

            USER: a

            CLAUDE: b

            ====================

            USER: c

        There is no trailing newline after the final line.
        """
        context = self.load_context(dir_key)

        parts = [f"{ROLE_LABELS[msg.role]}: {msg.content}\n\n" for msg in context.messages]
        if context.messages:
            parts.append(f"{HISTORY_SEPARATOR}\n\n")
        parts.append(f"{ROLE_LABELS[Role.USER]}: {new_user_text}")

        return "".join(parts)

    def clear_context(self, dir_key: str) -> bool:
        removed = self.store.delete(dir_key, DocumentKind.CONTEXT)
        if removed:
            logger.info(f"Cleared context for {dir_key[:12]}")
        return removed
