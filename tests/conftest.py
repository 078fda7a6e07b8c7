"""Pytest fixtures for update_packages tests."""

import io
import subprocess

import pytest
from rich.console import Console

import update_packages as up


class FakeProcesses:
    """Scripted stand-in for subprocess.run that records every argv."""

    def __init__(self):
        self.calls = []
        self.responses = {}
        self.errors = {}

    def script(self, *argv, returncode=0, stdout=""):
        self.responses[tuple(argv)] = (returncode, stdout)

    def raise_on(self, *argv, error):
        self.errors[tuple(argv)] = error

    def __call__(self, cmd, *args, **kwargs):
        argv = tuple(cmd)
        self.calls.append(argv)
        if argv in self.errors:
            raise self.errors[argv]
        returncode, stdout = self.responses.get(argv, (0, ""))
        captured = kwargs.get("capture_output", False)
        return subprocess.CompletedProcess(
            list(cmd),
            returncode,
            stdout=stdout if captured else None,
            stderr="" if captured else None,
        )

    def invocations(self, *prefix):
        return [call for call in self.calls if call[: len(prefix)] == prefix]


@pytest.fixture
def processes(monkeypatch):
    fake = FakeProcesses()
    monkeypatch.setattr(up.subprocess, "run", fake)
    return fake


@pytest.fixture
def installed(monkeypatch):
    """Names of tools that shutil.which resolves; empty by default."""
    tools = set()

    def fake_which(name, *args, **kwargs):
        return f"/usr/local/bin/{name}" if name in tools else None

    monkeypatch.setattr(up.shutil, "which", fake_which)
    return tools


@pytest.fixture
def console():
    return Console(
        file=io.StringIO(), color_system=None, width=200, highlight=False, soft_wrap=True
    )


@pytest.fixture
def settings():
    return up.UpdaterSettings()


@pytest.fixture
def make_app(console, settings, tmp_path):
    def _make(**options):
        config = up.RunConfig(color_enabled=False, **options)
        return up.UpdateApp(config, settings, console, workdir=tmp_path)

    return _make
