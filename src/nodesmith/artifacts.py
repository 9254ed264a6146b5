"""Artifact discovery and collection into the versioned output directory."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable
from pathlib import Path

from nodesmith.errors import FilesystemError
from nodesmith.events import EventSink

logger = logging.getLogger(__name__)

EXECUTABLE_MODE = 0o755


def executables_in(directory: Path) -> list[Path]:
    """Every regular file with an executable bit set, sorted by name."""
    if not directory.is_dir():
        return []
    return sorted(
        path for path in directory.iterdir() if path.is_file() and os.access(path, os.X_OK)
    )


def expected_artifacts(directory: Path, names: Iterable[str]) -> list[Path]:
    return [directory / name for name in names]


def collect_artifacts(candidates: Iterable[Path], output_dir: Path, sink: EventSink) -> list[Path]:
    """Copy each candidate into ``output_dir`` and mark the copy executable.

    Missing or uncopyable candidates are logged and skipped; the caller
    decides whether an empty result is fatal.
    """
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(
            "Failed to create output directory.",
            context={"operation": "collect", "path": str(output_dir), "reason": str(exc)},
        ) from exc
    sink.log(f"Copying binaries to: {output_dir}\n")

    copied: list[Path] = []
    for source in candidates:
        if not source.is_file():
            sink.log(f"⚠️  Binary not found (skipping): {source}\n")
            continue
        destination = output_dir / source.name
        try:
            shutil.copy2(source, destination)
            # copy2 does not preserve mode bits on every filesystem.
            destination.chmod(EXECUTABLE_MODE)
        except OSError as exc:
            logger.warning("Failed to copy %s: %s", source, exc)
            sink.log(f"⚠️  Failed to copy {source.name}: {exc}\n")
            continue
        sink.log(f"✓ Copied: {source.name} → {destination}\n")
        copied.append(destination)
    return copied


__all__ = ["EXECUTABLE_MODE", "collect_artifacts", "executables_in", "expected_artifacts"]
