"""
Shared fixtures.

The fake assistant is a small Python script run through sys.executable. Its
first argument selects a behaviour; the second is a file where it records
the argv it received and the prompt it read from stdin.
"""

import json
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from claude_acme.config import AcmeConfig


FAKE_ASSISTANT = r'''
import json
import sys

mode = sys.argv[1]
capture = sys.argv[2]
args = sys.argv[3:]


def out(line, stream=sys.stdout):
    stream.write(line + "\n")
    stream.flush()


def record(prompt):
    with open(capture, "w", encoding="utf-8") as f:
        json.dump({"args": args, "prompt": prompt}, f)


if mode == "noread":
    out("done")
    sys.exit(0)

if mode == "flood":
    # Fill both pipes well past their buffers before touching stdin
    for i in range(20000):
        out(f"[DEBUG] noise {i}")
        out(f"err {i}", sys.stderr)
    prompt = sys.stdin.read()
    record(prompt)
    out(f"received {len(prompt)}")
    sys.exit(0)

prompt = sys.stdin.read()
record(prompt)

if mode == "echo":
    out("[DEBUG] starting")
    out("Hello")
    out("[DEBUG] thinking")
    out("World")
    out("[DEBUG] stderr diagnostic", sys.stderr)
    out("warning: slow", sys.stderr)
elif mode.startswith("interleave:"):
    for i in range(int(mode.split(":")[1])):
        if i % 3 == 0:
            out(f"[DEBUG] step {i}")
        else:
            out(f"line {i}")
elif mode == "longline":
    out("x" * 300000)
    out("tail")
elif mode == "fail":
    out("partial answer")
    out("[DEBUG] failing", sys.stderr)
    out("fatal: unknown option", sys.stderr)
    sys.exit(3)
'''


class FakeAssistant:
    def __init__(self, tmp_path: Path):
        self.script = tmp_path / "fake_claude.py"
        self.script.write_text(FAKE_ASSISTANT)
        self.capture = tmp_path / "capture.json"

    def command(self, mode: str) -> list[str]:
        return [sys.executable, str(self.script), mode, str(self.capture)]

    def captured(self) -> dict:
        return json.loads(self.capture.read_text(encoding="utf-8"))


@pytest.fixture
def fake_assistant(tmp_path):
    """Fake assistant CLI script."""
    return FakeAssistant(tmp_path)


@pytest.fixture
def acme_config(tmp_path):
    """Config rooted in a temp directory, with debug tailing off."""
    return AcmeConfig(
        base_dir=str(tmp_path / "acme"),
        claude_home=str(tmp_path / "claude-home"),
        tail_debug_logs=False,
    )
