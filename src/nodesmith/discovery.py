"""Package-manager discovery feeding the environment builder."""

from __future__ import annotations

import os
import platform
from collections.abc import Callable, Sequence

BREW_CANDIDATES = ("/opt/homebrew/bin/brew", "/usr/local/bin/brew")


def find_brew(
    candidates: Sequence[str] = BREW_CANDIDATES,
    *,
    is_file: Callable[[str], bool] = os.path.isfile,
) -> str | None:
    """Return the ``brew`` executable path, Apple Silicon location first."""
    for path in candidates:
        if is_file(path):
            return path
    return None


def brew_prefix(brew: str) -> str:
    return "/opt/homebrew" if "/opt/homebrew" in brew else "/usr/local"


def host_summary(brew: str | None) -> str:
    prefix = brew_prefix(brew) if brew else "Not Found"
    return (
        f"System: {platform.system()} {platform.release()}  |  "
        f"Homebrew: {prefix}  |  CPUs: {os.cpu_count() or 1}"
    )


__all__ = ["BREW_CANDIDATES", "brew_prefix", "find_brew", "host_summary"]
