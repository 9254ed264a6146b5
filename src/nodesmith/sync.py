"""Shallow source checkouts pinned to exactly one release tag."""

from __future__ import annotations

import logging
import re
import shlex
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from nodesmith.errors import CommandFailedError, FilesystemError, InvalidInputError, NetworkError
from nodesmith.runner import CommandRunner

logger = logging.getLogger(__name__)

TAG_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

SyncOutcome = Literal["reused", "cloned", "recloned"]


def validate_tag(tag: str) -> str:
    """Reject tags that are unsafe to interpolate into a shell command."""
    if not TAG_PATTERN.fullmatch(tag):
        raise InvalidInputError(
            "Version tag contains characters outside [A-Za-z0-9._-].",
            hint="Pick a release tag from the version list, e.g. v27.0.",
            context={"operation": "sync", "tag": tag},
        )
    return tag


def clone_command(*, tag: str, repo_url: str, target_dir: Path) -> str:
    # No --filter=blob:none: deferred blob downloads make later build steps
    # appear to hang with no visible network activity.
    argv = [
        "git",
        "clone",
        "--progress",
        "--depth",
        "1",
        "--single-branch",
        "--branch",
        shlex.quote(tag),
        shlex.quote(repo_url),
        shlex.quote(str(target_dir)),
    ]
    return " ".join(argv)


async def checked_out_tag(
    target_dir: Path,
    *,
    runner: CommandRunner,
    env: Mapping[str, str],
) -> str | None:
    """Return the tag exactly matching ``HEAD``, or ``None``."""
    if not (target_dir / ".git").exists():
        return None
    return await runner.capture(
        ["git", "describe", "--tags", "--exact-match", "HEAD"],
        cwd=target_dir,
        env=env,
    )


async def sync_source(
    target_dir: Path,
    build_root: Path,
    tag: str,
    repo_url: str,
    *,
    env: Mapping[str, str],
    runner: CommandRunner,
) -> SyncOutcome:
    """Make ``target_dir`` hold a checkout of exactly ``tag``.

    A matching checkout is reused without touching the network. Any other
    existing directory is removed and cloned again; it is never updated in
    place.
    """
    validate_tag(tag)
    sink = runner.sink
    recloned = False

    if target_dir.exists():
        current = await checked_out_tag(target_dir, runner=runner, env=env)
        if current == tag:
            sink.log(f"✓ Source directory already at {tag}: {target_dir}\n")
            logger.debug("Reusing checkout %s at %s", target_dir, tag)
            return "reused"
        sink.log(
            f"⚠️  {target_dir} is at {current or 'an unknown revision'}, "
            f"expected {tag}. Removing and cloning again...\n"
        )
        _remove_tree(target_dir)
        recloned = True

    sink.log(f"\n📥 Cloning {repo_url} at {tag}...\n")
    command = clone_command(tag=tag, repo_url=repo_url, target_dir=target_dir)
    try:
        await runner.run(command, cwd=build_root, env=env)
    except CommandFailedError as exc:
        raise NetworkError(
            "git clone failed.",
            hint="Check your internet connection and that the tag exists upstream.",
            context={
                "operation": "sync",
                "repo": repo_url,
                "tag": tag,
                "command": exc.command,
                "returncode": str(exc.returncode) if exc.returncode is not None else "",
                "signal": str(exc.signal) if exc.signal is not None else "",
            },
        ) from exc
    sink.log(f"✓ Source cloned to {target_dir}\n")
    return "recloned" if recloned else "cloned"


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except OSError as exc:
        raise FilesystemError(
            "Could not remove stale source checkout.",
            hint="Delete the directory manually and retry.",
            context={"operation": "sync", "path": str(path), "reason": str(exc)},
        ) from exc


__all__ = ["SyncOutcome", "TAG_PATTERN", "checked_out_tag", "clone_command", "sync_source", "validate_tag"]
