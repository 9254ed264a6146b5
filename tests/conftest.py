"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import shutil
import subprocess
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path

import pytest

from nodesmith.errors import CommandFailedError
from nodesmith.events import Event, EventSink, LogLine, Notify, Progress, TaskFinished


class RecordingRunner:
    """Stands in for ``CommandRunner``: records commands instead of spawning them.

    ``captures`` maps a space-joined probe argv to its stdout (absent keys
    behave like a missing program). ``fail_on`` and ``hang_on`` are command
    substrings that make ``run`` fail with exit 1 or block until cancelled.
    """

    def __init__(
        self,
        sink: EventSink,
        *,
        captures: Mapping[str, str] | None = None,
        fail_on: Iterable[str] = (),
        hang_on: Iterable[str] = (),
        on_run: Callable[[str, Path | None], None] | None = None,
    ) -> None:
        self.sink = sink
        self.captures = dict(captures or {})
        self.fail_on = tuple(fail_on)
        self.hang_on = tuple(hang_on)
        self.on_run = on_run
        self.commands: list[str] = []
        self.cwds: list[Path | None] = []
        self.probes: list[str] = []

    async def run(
        self,
        command: str,
        *,
        env: Mapping[str, str],
        cwd: Path | None = None,
        echo: bool = True,
    ) -> None:
        self.commands.append(command)
        self.cwds.append(cwd)
        if echo:
            self.sink.log(f"\n$ {command}\n")
        if any(pattern in command for pattern in self.hang_on):
            await asyncio.sleep(3600)
        if any(pattern in command for pattern in self.fail_on):
            raise CommandFailedError(command=command, returncode=1)
        if self.on_run is not None:
            self.on_run(command, cwd)

    async def capture(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str],
        cwd: Path | None = None,
    ) -> str | None:
        key = " ".join(argv)
        self.probes.append(key)
        return self.captures.get(key)


def log_text(events: Iterable[Event]) -> str:
    return "".join(event.text for event in events if isinstance(event, LogLine))


def notifications(events: Iterable[Event]) -> list[Notify]:
    return [event for event in events if isinstance(event, Notify)]


def fractions(events: Iterable[Event]) -> list[float]:
    return [event.fraction for event in events if isinstance(event, Progress)]


def finished_count(events: Iterable[Event]) -> int:
    return sum(1 for event in events if isinstance(event, TaskFinished))


def make_executable(path: Path, content: str = "#!/bin/sh\nexit 0\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    path.chmod(0o755)
    return path


@pytest.fixture
def sink() -> EventSink:
    return EventSink()


@pytest.fixture
def require_sh() -> None:
    if shutil.which("sh") is None or not Path("/bin/sh").exists():
        pytest.skip("POSIX sh is not available")


@pytest.fixture
def git_repo_factory(tmp_path: Path) -> Callable[..., Path]:
    """Create a local upstream repository with one commit per tag."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    def factory(name: str = "upstream", tags: Sequence[str] = ("v1.0",)) -> Path:
        path = tmp_path / name
        path.mkdir(parents=True, exist_ok=True)
        _run_git(["init"], cwd=path)
        _run_git(["checkout", "-b", "main"], cwd=path)
        _run_git(["config", "user.email", "nodesmith@example.com"], cwd=path)
        _run_git(["config", "user.name", "Nodesmith Test"], cwd=path)
        _run_git(["config", "commit.gpgsign", "false"], cwd=path)
        _run_git(["config", "tag.gpgsign", "false"], cwd=path)
        for tag in tags:
            (path / "VERSION").write_text(f"{tag}\n", encoding="utf-8")
            _run_git(["add", "VERSION"], cwd=path)
            _run_git(["commit", "-m", f"release {tag}"], cwd=path)
            _run_git(["tag", tag], cwd=path)
        return path

    return factory


def _run_git(argv: list[str], *, cwd: Path) -> str:
    completed = subprocess.run(
        ["git", *argv],
        cwd=cwd,
        check=False,
        text=True,
        capture_output=True,
    )
    if completed.returncode != 0:
        raise RuntimeError(f"git {' '.join(argv)} failed: {completed.stderr.strip()}")
    return completed.stdout.strip()
