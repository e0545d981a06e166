"""
Unit tests for orchestrator module.

Each test drives the orchestrator through CommandEvents, with the fake
assistant standing in for the real CLI.
"""

import pytest

from claude_acme.commands import Command, CommandEvent
from claude_acme.keyed_store import DocumentKind
from claude_acme.orchestrator import EMPTY_PROMPT_NOTICE, PROMPT_HEADER, Orchestrator, extract_user_input
from claude_acme.schema import PermissionMode, Role
from claude_acme.sessions import flatten_path
from claude_acme.surface import BufferSurface

SESSION_ID = "123e4567-e89b-12d3-a456-426614174000"
OTHER_ID = "223e4567-e89b-12d3-a456-426614174000"


class TestExtractUserInput:
    """Tests for prompt extraction from a shared surface."""

    def test_text_after_last_header(self):
        body = f"{PROMPT_HEADER}\nold\n\nCLAUDE:\nreply\n\n{PROMPT_HEADER}\n  new question \n"
        assert extract_user_input(body) == "new question"

    def test_whole_body_without_header(self):
        assert extract_user_input("  just text\n") == "just text"

    def test_empty_after_header(self):
        assert extract_user_input(f"{PROMPT_HEADER}\n\n") == ""


class TestOrchestrator:
    """Tests for command handling."""

    @pytest.fixture
    def cwd(self, tmp_path):
        path = tmp_path / "project"
        path.mkdir()
        return str(path)

    @pytest.fixture
    def conversation(self):
        return BufferSurface()

    @pytest.fixture
    def make(self, acme_config, fake_assistant, cwd, conversation):
        def _make(mode="echo", **surfaces):
            acme_config.assistant_command = fake_assistant.command(mode)
            return Orchestrator(acme_config, cwd, conversation, **surfaces)

        return _make

    def _history(self, orchestrator):
        context = orchestrator.contexts.load_context(orchestrator.dir_key)
        return [(m.role, m.content) for m in context.messages]

    # -- Send --------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_send_records_exchange(self, make, conversation):
        orchestrator = make()

        assert await orchestrator.dispatch(CommandEvent.parse("Send", "hi")) is True

        assert self._history(orchestrator) == [(Role.USER, "hi"), (Role.ASSISTANT, "Hello\nWorld")]
        assert conversation.read() == (
            "\nUSER:\nhi\n\nCLAUDE:\n" "Hello\nWorld\n" f"\n====================\n\n{PROMPT_HEADER}\n"
        )

    @pytest.mark.asyncio
    async def test_second_send_replays_history(self, make, fake_assistant):
        orchestrator = make()
        await orchestrator.dispatch(CommandEvent.parse("Send", "hi"))
        await orchestrator.dispatch(CommandEvent.parse("Send", "again"))

        assert fake_assistant.captured()["prompt"] == (
            "USER: hi\n\nCLAUDE: Hello\nWorld\n\n====================\n\nUSER: again"
        )
        assert len(self._history(orchestrator)) == 4

    @pytest.mark.asyncio
    async def test_send_passes_permission_args(self, make, fake_assistant):
        orchestrator = make()
        await orchestrator.dispatch(CommandEvent.parse("Send", "hi"))

        args = fake_assistant.captured()["args"]
        assert args[:2] == ["-p", "-d"]
        assert args[args.index("--allowedTools") + 1] == "Read"
        assert "Read" not in args[args.index("--disallowedTools") + 1].split(",")
        assert args[-2:] == ["--permission-mode", "acceptEdits"]

    @pytest.mark.asyncio
    async def test_failed_send_persists_nothing(self, make, conversation):
        orchestrator = make("fail")

        await orchestrator.dispatch(CommandEvent.parse("Send", "hi"))

        assert orchestrator.store.load(orchestrator.dir_key, DocumentKind.CONTEXT) is None
        text = conversation.read()
        assert "[Error: exit status 3]" in text
        assert "Claude CLI Error Output:\nfatal: unknown option\n" in text
        assert PROMPT_HEADER not in text

    @pytest.mark.asyncio
    async def test_empty_prompt(self, make, conversation, fake_assistant):
        orchestrator = make()
        orchestrator.open()

        await orchestrator.dispatch(CommandEvent.parse("Send"))

        assert conversation.read() == f"{PROMPT_HEADER}\n{EMPTY_PROMPT_NOTICE}"
        assert not fake_assistant.capture.exists()

    @pytest.mark.asyncio
    async def test_shared_prompt_surface(self, make, conversation, fake_assistant):
        orchestrator = make()
        orchestrator.open()
        conversation.append("what changed?\n")

        await orchestrator.dispatch(CommandEvent.parse("Send"))

        assert fake_assistant.captured()["prompt"] == "USER: what changed?"
        assert conversation.read().startswith(f"{PROMPT_HEADER}\nwhat changed?\n\n\nCLAUDE:\nHello\nWorld\n")
        assert extract_user_input(conversation.read()) == ""

    @pytest.mark.asyncio
    async def test_separate_prompt_surface_cleared(self, make, conversation, fake_assistant):
        prompt = BufferSurface("question\n")
        orchestrator = make(prompt=prompt)

        await orchestrator.dispatch(CommandEvent.parse("Send"))

        assert prompt.read() == ""
        assert fake_assistant.captured()["prompt"] == "USER: question"
        assert conversation.read().startswith("\nUSER:\nquestion\n\nCLAUDE:\n")

    @pytest.mark.asyncio
    async def test_trace_surface(self, make):
        trace = BufferSurface()
        orchestrator = make(trace=trace)

        await orchestrator.dispatch(CommandEvent.parse("Send", "hi"))

        text = trace.read()
        assert text.startswith("Executing claude with args: [")
        assert "[DEBUG] starting\n" in text

    @pytest.mark.asyncio
    async def test_corrupt_context_blocks_send(self, make, conversation, fake_assistant):
        orchestrator = make()
        path = orchestrator.store.path_for(orchestrator.dir_key, DocumentKind.CONTEXT)
        path.parent.mkdir(parents=True)
        path.write_text("{broken")

        assert await orchestrator.dispatch(CommandEvent.parse("Send", "hi")) is True

        assert "[Error: failed to parse" in conversation.read()
        assert not fake_assistant.capture.exists()
        assert path.read_text() == "{broken"

    @pytest.mark.asyncio
    async def test_undecodable_context_surfaced(self, make, conversation, fake_assistant):
        orchestrator = make()
        path = orchestrator.store.path_for(orchestrator.dir_key, DocumentKind.CONTEXT)
        path.parent.mkdir(parents=True)
        path.write_bytes(b'{"messages": [], "lastUsed": "\xff\xfe"}')

        assert await orchestrator.dispatch(CommandEvent.parse("Send", "hi")) is True

        assert "[Error: failed to parse" in conversation.read()
        assert not fake_assistant.capture.exists()

    @pytest.mark.asyncio
    async def test_corrupt_context_keeps_typed_prompt(self, make, conversation):
        prompt = BufferSurface("question\n")
        orchestrator = make(prompt=prompt)
        path = orchestrator.store.path_for(orchestrator.dir_key, DocumentKind.CONTEXT)
        path.parent.mkdir(parents=True)
        path.write_text("{broken")

        await orchestrator.dispatch(CommandEvent.parse("Send"))

        assert prompt.read() == "question\n"
        assert "USER:\nquestion" not in conversation.read()
        assert "[Error: failed to parse" in conversation.read()

    @pytest.mark.asyncio
    async def test_launch_error_surfaced(self, acme_config, cwd, conversation, tmp_path):
        acme_config.assistant_command = [str(tmp_path / "missing-claude")]
        orchestrator = Orchestrator(acme_config, cwd, conversation)

        await orchestrator.dispatch(CommandEvent.parse("Send", "hi"))

        assert "[Error: error starting assistant:" in conversation.read()
        assert orchestrator.store.load(orchestrator.dir_key, DocumentKind.CONTEXT) is None

    # -- Session continuation ----------------------------------------------

    def _write_transcript(self, acme_config, cwd, session_id):
        project = acme_config.projects_dir / flatten_path(cwd)
        project.mkdir(parents=True, exist_ok=True)
        (project / f"{session_id}.jsonl").write_text('{"summary":"Earlier work"}\n')

    @pytest.mark.asyncio
    async def test_fresh_start_without_transcripts(self, make, fake_assistant):
        await make().dispatch(CommandEvent.parse("Send", "hi"))
        args = fake_assistant.captured()["args"]
        assert "-r" not in args
        assert "-c" not in args

    @pytest.mark.asyncio
    async def test_resumes_most_recent_transcript(self, make, fake_assistant, acme_config, cwd):
        self._write_transcript(acme_config, cwd, SESSION_ID)

        await make().dispatch(CommandEvent.parse("Send", "hi"))

        args = fake_assistant.captured()["args"]
        assert args[2:4] == ["-r", SESSION_ID]

    @pytest.mark.asyncio
    async def test_loaded_session_wins(self, make, fake_assistant, acme_config, cwd):
        self._write_transcript(acme_config, cwd, SESSION_ID)
        orchestrator = make()

        await orchestrator.dispatch(CommandEvent.parse("Load", f"[{OTHER_ID}]"))
        await orchestrator.dispatch(CommandEvent.parse("Send", "hi"))

        assert fake_assistant.captured()["args"][2:4] == ["-r", OTHER_ID]

    # -- Permissions -------------------------------------------------------

    @pytest.mark.asyncio
    async def test_show_permissions(self, make, cwd):
        surface = BufferSurface()
        orchestrator = make(permissions_surface=surface)

        await orchestrator.dispatch(CommandEvent.parse("Permissions"))

        text = surface.read()
        assert text.startswith(f"# Active permissions for: {cwd}\n# PermissionMode: acceptEdits\n")
        assert "+ Read\n" in text

    @pytest.mark.asyncio
    async def test_edit_then_save(self, make):
        surface = BufferSurface()
        orchestrator = make(permissions_surface=surface)

        await orchestrator.dispatch(CommandEvent.parse("Edit"))
        assert surface.read().startswith("# Available tools to grant")

        surface.write(surface.read().replace("  Bash\n", "+ Bash\n").replace("  WebFetch\n", "- WebFetch\n"))
        await orchestrator.dispatch(CommandEvent.parse("Save"))

        profile = orchestrator.permissions.load(orchestrator.dir_key)
        assert profile.allowed_tools == ["Read", "Bash"]
        assert profile.disallowed_tools == ["WebFetch"]
        text = surface.read()
        assert "+ Bash\n" in text
        assert text.endswith("\n✓ Permissions updated successfully!\n")

    @pytest.mark.asyncio
    async def test_save_current_listing_unchanged(self, make):
        surface = BufferSurface()
        orchestrator = make(permissions_surface=surface)

        await orchestrator.dispatch(CommandEvent.parse("Show"))
        before = orchestrator.permissions.load(orchestrator.dir_key)
        await orchestrator.dispatch(CommandEvent.parse("Save"))

        assert orchestrator.permissions.load(orchestrator.dir_key) == before

    @pytest.mark.asyncio
    async def test_mode_command(self, make, fake_assistant):
        surface = BufferSurface()
        orchestrator = make(permissions_surface=surface)

        await orchestrator.dispatch(CommandEvent.parse("plan"))
        assert "# PermissionMode: plan\n" in surface.read()
        assert orchestrator.permissions.load(orchestrator.dir_key).permission_mode == PermissionMode.PLAN

        await orchestrator.dispatch(CommandEvent.parse("Send", "hi"))
        assert fake_assistant.captured()["args"][-2:] == ["--permission-mode", "plan"]

    @pytest.mark.asyncio
    async def test_unknown_mode(self, make):
        surface = BufferSurface()
        orchestrator = make(permissions_surface=surface)

        await orchestrator.dispatch(CommandEvent(Command.MODE, "Mode", "turbo"))

        assert "Unknown permission mode: turbo" in surface.read()
        assert orchestrator.store.load(orchestrator.dir_key, DocumentKind.PERMISSIONS) is None

    # -- Sessions ----------------------------------------------------------

    @pytest.mark.asyncio
    async def test_list_sessions(self, make, acme_config, cwd):
        self._write_transcript(acme_config, cwd, SESSION_ID)
        surface = BufferSurface()
        orchestrator = make(sessions_surface=surface)

        await orchestrator.dispatch(CommandEvent.parse("Sessions"))

        assert surface.read().splitlines()[2] == f"[{SESSION_ID}] | Earlier work"

    @pytest.mark.asyncio
    async def test_list_sessions_empty(self, make):
        surface = BufferSurface()
        await make(sessions_surface=surface).dispatch(CommandEvent.parse("Refresh"))
        assert "No sessions found" in surface.read()

    @pytest.mark.asyncio
    async def test_load_invalid_id(self, make):
        surface = BufferSurface()
        orchestrator = make(sessions_surface=surface)

        await orchestrator.dispatch(CommandEvent.parse("Load", "not-a-session"))

        assert "Invalid UUID format: not-a-session" in surface.read()
        assert orchestrator.scope.selected_id is None

    @pytest.mark.asyncio
    async def test_load_without_id(self, make):
        surface = BufferSurface()
        await make(sessions_surface=surface).dispatch(CommandEvent.parse("Load"))
        assert "Usage:" in surface.read()

    @pytest.mark.asyncio
    async def test_bare_session_id_loads(self, make):
        surface = BufferSurface()
        orchestrator = make(sessions_surface=surface)

        await orchestrator.dispatch(CommandEvent.parse(SESSION_ID))

        assert orchestrator.scope.selected_id == SESSION_ID
        assert f"Loaded session {SESSION_ID}\n" in surface.read()

    # -- Reset & pass-through ----------------------------------------------

    @pytest.mark.asyncio
    async def test_reset(self, make, conversation, cwd):
        orchestrator = make()
        await orchestrator.dispatch(CommandEvent.parse("Send", "hi"))
        await orchestrator.dispatch(CommandEvent.parse(SESSION_ID))

        await orchestrator.dispatch(CommandEvent.parse("Reset"))

        assert self._history(orchestrator) == []
        assert orchestrator.scope.selected_id is None
        assert conversation.read().endswith(f"Cleared Claude context for directory: {cwd}\n")

    @pytest.mark.asyncio
    async def test_unknown_command_passes_through(self, make, conversation):
        orchestrator = make()
        assert await orchestrator.dispatch(CommandEvent.parse("Put")) is False
        assert conversation.read() == ""
