"""Buildable projects and version-driven build-system selection."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from nodesmith.errors import InvalidInputError
from nodesmith.events import ProjectKind

VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)")


class BuildStrategy(StrEnum):
    CMAKE = "cmake"
    AUTOTOOLS = "autotools"
    CARGO = "cargo"


@dataclass(frozen=True, slots=True)
class Project:
    kind: ProjectKind
    display_name: str
    repo_url: str
    releases_api: str
    strategy: BuildStrategy
    legacy_strategy: BuildStrategy | None = None
    cutover: tuple[int, int] | None = None

    def source_dir_name(self, version: str) -> str:
        return f"{self.kind}-{strip_version(version)}"


BITCOIN = Project(
    kind="bitcoin",
    display_name="Bitcoin Core",
    repo_url="https://github.com/bitcoin/bitcoin.git",
    releases_api="https://api.github.com/repos/bitcoin/bitcoin/releases",
    strategy=BuildStrategy.CMAKE,
    legacy_strategy=BuildStrategy.AUTOTOOLS,
    cutover=(25, 0),
)

ELECTRS = Project(
    kind="electrs",
    display_name="Electrs",
    repo_url="https://github.com/romanz/electrs.git",
    releases_api="https://api.github.com/repos/romanz/electrs/releases",
    strategy=BuildStrategy.CARGO,
)

PROJECTS: dict[str, Project] = {BITCOIN.kind: BITCOIN, ELECTRS.kind: ELECTRS}


def strip_version(tag: str) -> str:
    return tag.lstrip("v")


def parse_version(tag: str) -> tuple[int, int]:
    """Parse the leading ``major.minor`` of a tag, ``(0, 0)`` if absent."""
    match = VERSION_PATTERN.match(strip_version(tag))
    if match is None:
        return (0, 0)
    return (int(match.group(1)), int(match.group(2)))


def select_strategy(project: Project, version: str) -> BuildStrategy:
    if project.legacy_strategy is None or project.cutover is None:
        return project.strategy
    if parse_version(version) >= project.cutover:
        return project.strategy
    return project.legacy_strategy


def project_for(kind: str) -> Project:
    try:
        return PROJECTS[kind]
    except KeyError as exc:
        raise InvalidInputError(
            f"Unknown project `{kind}`.",
            hint=f"Choose one of: {', '.join(sorted(PROJECTS))}.",
        ) from exc


__all__ = [
    "BITCOIN",
    "BuildStrategy",
    "ELECTRS",
    "PROJECTS",
    "Project",
    "parse_version",
    "project_for",
    "select_strategy",
    "strip_version",
]
