from __future__ import annotations

import pytest

import incident_snapshot
from incident_snapshot import Capability


class FakeShell:
    """Records commands and answers them from a lookup table."""

    def __init__(self, outputs=None, default=""):
        self.outputs = dict(outputs or {})
        self.default = default
        self.commands = []

    def __call__(self, cmd):
        self.commands.append(cmd)
        return self.outputs.get(cmd, self.default)


@pytest.fixture
def fake_shell(monkeypatch):
    shell = FakeShell()
    monkeypatch.setattr(incident_snapshot, "run_capture", shell)
    return shell


@pytest.fixture
def tools(monkeypatch):
    """Every tool is available unless the test overrides it."""
    state = {}

    def fake_detect(name):
        return state.get(name, Capability.AVAILABLE)

    monkeypatch.setattr(incident_snapshot, "detect_tool", fake_detect)
    return state


def parse_sections(text):
    """Split a category file into (title, body) pairs."""
    sections = []
    lines = text.split("\n")
    i = 0
    while i < len(lines):
        if i + 1 < len(lines) and lines[i] and lines[i + 1] == "=" * len(lines[i]):
            title = lines[i]
            i += 2
            body = []
            while i < len(lines) and not (
                i + 1 < len(lines) and lines[i] and lines[i + 1] == "=" * len(lines[i])
            ):
                body.append(lines[i])
                i += 1
            sections.append((title, "\n".join(body)))
        else:
            i += 1
    return sections
