import asyncio
import os
from collections.abc import Callable
from pathlib import Path

import pytest

from conftest import RecordingRunner, log_text
from nodesmith.errors import InvalidInputError, NetworkError
from nodesmith.events import EventSink
from nodesmith.runner import CommandRunner
from nodesmith.sync import checked_out_tag, clone_command, sync_source, validate_tag


def test_unsafe_tag_is_rejected_before_any_command(sink: EventSink, tmp_path: Path) -> None:
    runner = RecordingRunner(sink)

    with pytest.raises(InvalidInputError):
        asyncio.run(
            sync_source(
                tmp_path / "bitcoin-27.0",
                tmp_path,
                "v27.0; rm -rf ~",
                "https://example.invalid/repo.git",
                env={},
                runner=runner,  # type: ignore[arg-type]
            )
        )

    assert runner.commands == []
    assert runner.probes == []


@pytest.mark.parametrize("tag", ["v27.0", "0.10.5", "v1.0-rc1", "release_2"])
def test_safe_tags_are_accepted(tag: str) -> None:
    assert validate_tag(tag) == tag


@pytest.mark.parametrize("tag", ["", "v1 0", "$(id)", "v1/2", "v1\n"])
def test_unsafe_tags_are_rejected(tag: str) -> None:
    with pytest.raises(InvalidInputError):
        validate_tag(tag)


def test_clone_command_is_shallow_and_single_branch(tmp_path: Path) -> None:
    command = clone_command(
        tag="v27.0",
        repo_url="https://github.com/bitcoin/bitcoin.git",
        target_dir=tmp_path / "my builds" / "bitcoin-27.0",
    )

    assert command.startswith("git clone --progress --depth 1 --single-branch --branch v27.0 ")
    assert f"'{tmp_path / 'my builds' / 'bitcoin-27.0'}'" in command
    assert "--filter" not in command


def test_matching_checkout_is_reused_without_cloning(sink: EventSink, tmp_path: Path) -> None:
    target = tmp_path / "bitcoin-27.0"
    (target / ".git").mkdir(parents=True)
    runner = RecordingRunner(
        sink,
        captures={"git describe --tags --exact-match HEAD": "v27.0"},
    )

    outcome = asyncio.run(
        sync_source(target, tmp_path, "v27.0", "https://example.invalid/repo.git", env={}, runner=runner)  # type: ignore[arg-type]
    )

    assert outcome == "reused"
    assert runner.commands == []


def test_directory_without_git_metadata_is_recloned(sink: EventSink, tmp_path: Path) -> None:
    target = tmp_path / "bitcoin-27.0"
    target.mkdir()
    (target / "stale.txt").write_text("leftover\n", encoding="utf-8")
    runner = RecordingRunner(sink)

    outcome = asyncio.run(
        sync_source(target, tmp_path, "v27.0", "https://example.invalid/repo.git", env={}, runner=runner)  # type: ignore[arg-type]
    )

    assert outcome == "recloned"
    assert not target.exists()
    assert runner.probes == []
    assert runner.commands[0].startswith("git clone")
    assert runner.cwds == [tmp_path]


def test_sync_against_local_repository(
    sink: EventSink,
    tmp_path: Path,
    git_repo_factory: Callable[..., Path],
) -> None:
    upstream = git_repo_factory(tags=("v1.0", "v2.0"))
    build_root = tmp_path / "builds"
    build_root.mkdir()
    target = build_root / "project-src"
    runner = CommandRunner(sink)
    env = dict(os.environ)

    def sync(tag: str) -> str:
        return asyncio.run(
            sync_source(target, build_root, tag, upstream.as_uri(), env=env, runner=runner)
        )

    assert sync("v1.0") == "cloned"
    assert (target / "VERSION").read_text(encoding="utf-8") == "v1.0\n"
    sink.drain()

    assert sync("v1.0") == "reused"
    assert "git clone" not in log_text(sink.drain())

    assert sync("v2.0") == "recloned"
    assert (target / "VERSION").read_text(encoding="utf-8") == "v2.0\n"
    assert asyncio.run(checked_out_tag(target, runner=runner, env=env)) == "v2.0"


def test_clone_of_missing_tag_is_network_error(
    sink: EventSink,
    tmp_path: Path,
    git_repo_factory: Callable[..., Path],
) -> None:
    upstream = git_repo_factory(tags=("v1.0",))
    build_root = tmp_path / "builds"
    build_root.mkdir()

    with pytest.raises(NetworkError) as excinfo:
        asyncio.run(
            sync_source(
                build_root / "project-src",
                build_root,
                "v9.9",
                upstream.as_uri(),
                env=dict(os.environ),
                runner=CommandRunner(sink),
            )
        )

    assert excinfo.value.context["tag"] == "v9.9"
    assert excinfo.value.context["returncode"] != ""
