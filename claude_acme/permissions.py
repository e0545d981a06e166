"""
Tool permission policy and its edit-directive parser.

The permissions surface shows a free-form listing. Lines starting with a
marker edit the policy when the listing is saved:

    + Bash        allow
    - WebFetch    deny
    ~ Edit        forget (remove from both lists)

Everything else in the buffer is ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from .config import AcmeConfig
from .errors import DocumentCorruptError
from .keyed_store import DocumentKind, KeyedStore
from .schema import PermissionMode, PermissionProfile

logger = logging.getLogger(__name__)

ALLOW_MARKER = "+"
DENY_MARKER = "-"
FORGET_MARKER = "~"
COMMENT_MARKER = "#"


@dataclass
class EditBatch:
    """Directives parsed from one edit buffer, grouped by kind."""

    allow: list[str] = field(default_factory=list)
    deny: list[str] = field(default_factory=list)
    forget: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.allow or self.deny or self.forget)

    def apply(self, profile: PermissionProfile) -> None:
        """
        Apply to a profile: all allows, then all denies, then all forgets.

        The fixed order makes the outcome independent of line order: a deny
        beats an allow for the same tool, and a forget beats both.
        """
        for tool in self.allow:
            profile.allow(tool)
        for tool in self.deny:
            profile.deny(tool)
        for tool in self.forget:
            profile.forget(tool)


def parse_edits(content: str) -> EditBatch:
    batch = EditBatch()
    targets = {
        ALLOW_MARKER: batch.allow,
        DENY_MARKER: batch.deny,
        FORGET_MARKER: batch.forget,
    }

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith(COMMENT_MARKER):
            continue

        target = targets.get(line[0])
        if target is None:
            continue
        tool = line[1:].strip()
        if tool:
            target.append(tool)

    return batch


def compute_disallowed(profile: PermissionProfile, known_tools: list[str]) -> list[str]:
    """
    Effective --disallowedTools value.

    Every catalog tool that is not explicitly allowed, followed by any
    explicitly denied tool the catalog does not list (e.g. a shell pattern).
    A tool is unusable until the user allows it.
    """
    allowed = set(profile.allowed_tools)
    disallowed = [tool for tool in known_tools if tool not in allowed]

    for tool in profile.disallowed_tools:
        if tool not in disallowed:
            disallowed.append(tool)

    return disallowed


class PermissionModel:
    """
    Store-backed permission profiles.

    Every mutating call persists the profile before returning.
    """

    def __init__(self, store: KeyedStore, config: AcmeConfig):
        self.store = store
        self.config = config

    @property
    def known_tools(self) -> list[str]:
        return self.config.known_tools

    def default_profile(self) -> PermissionProfile:
        profile = PermissionProfile(allowed_tools=list(self.config.default_allowed_tools))
        profile.set_mode(PermissionMode(self.config.default_permission_mode))
        return profile

    def load(self, dir_key: str) -> PermissionProfile:
        data = self.store.load(dir_key, DocumentKind.PERMISSIONS)
        if data is None:
            return self.default_profile()
        try:
            return PermissionProfile.model_validate(data)
        except ValidationError as e:
            raise DocumentCorruptError(self.store.path_for(dir_key, DocumentKind.PERMISSIONS), str(e)) from e

    def save(self, dir_key: str, profile: PermissionProfile) -> None:
        self.store.save(dir_key, DocumentKind.PERMISSIONS, profile.to_document())

    def allow(self, dir_key: str, tool: str) -> PermissionProfile:
        profile = self.load(dir_key)
        profile.allow(tool)
        self.save(dir_key, profile)
        return profile

    def deny(self, dir_key: str, tool: str) -> PermissionProfile:
        profile = self.load(dir_key)
        profile.deny(tool)
        self.save(dir_key, profile)
        return profile

    def forget(self, dir_key: str, tool: str) -> PermissionProfile:
        profile = self.load(dir_key)
        profile.forget(tool)
        self.save(dir_key, profile)
        return profile

    def apply_edits(self, dir_key: str, content: str) -> PermissionProfile:
        """Parse an edit buffer, merge it into the stored profile and save."""
        batch = parse_edits(content)
        profile = self.load(dir_key)
        batch.apply(profile)
        self.save(dir_key, profile)
        logger.info(
            f"Applied permission edits: +{len(batch.allow)} -{len(batch.deny)} ~{len(batch.forget)}"
        )
        return profile

    def set_mode(self, dir_key: str, mode: PermissionMode) -> PermissionProfile:
        profile = self.load(dir_key)
        profile.set_mode(mode)
        self.save(dir_key, profile)
        return profile

    def disallowed(self, profile: PermissionProfile) -> list[str]:
        return compute_disallowed(profile, self.known_tools)

    def arguments(self, profile: PermissionProfile) -> list[str]:
        """Permission flags for the assistant command line."""
        args: list[str] = []

        if profile.allowed_tools:
            args += ["--allowedTools", ",".join(profile.allowed_tools)]

        disallowed = self.disallowed(profile)
        if disallowed:
            args += ["--disallowedTools", ",".join(disallowed)]

        args += ["--permission-mode", profile.effective_mode.value]
        return args

    def render_current(self, cwd: str, profile: PermissionProfile) -> str:
        lines = [
            f"# Active permissions for: {cwd}",
            f"# PermissionMode: {profile.effective_mode.value}",
            "",
            "Mode: " + " ".join(f"[{mode.value}]" for mode in PermissionMode),
            "",
        ]
        lines += [f"{ALLOW_MARKER} {tool}" for tool in profile.allowed_tools]
        lines += [f"{DENY_MARKER} {tool}" for tool in profile.disallowed_tools]
        return "\n".join(lines) + "\n"

    def render_edit(self, profile: PermissionProfile) -> str:
        """Listing of catalog tools not yet allowed, ready for marking up."""
        allowed = set(profile.allowed_tools)
        lines = [
            f"# Available tools to grant - edit with {ALLOW_MARKER} to allow, "
            f"{DENY_MARKER} to deny, {FORGET_MARKER} to remove",
            "",
        ]
        lines += [f"  {tool}" for tool in self.known_tools if tool not in allowed]
        return "\n".join(lines) + "\n"
