"""Stable release tags from the GitHub releases API."""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
import re
from collections.abc import Iterable
from typing import Any
from urllib.request import Request, urlopen

from nodesmith.errors import NetworkError
from nodesmith.events import EventSink, VersionListLoaded
from nodesmith.projects import Project

logger = logging.getLogger(__name__)

DEFAULT_MAX_VERSIONS = 10
DEFAULT_TIMEOUT = 10.0
USER_AGENT = "nodesmith/0.1"

PRERELEASE_PATTERN = re.compile(r"(rc|alpha|beta|pre)[.-]?\d*$", re.IGNORECASE)


def is_prerelease_tag(tag: str) -> bool:
    return PRERELEASE_PATTERN.search(tag) is not None


def filter_stable_tags(tags: Iterable[str], limit: int = DEFAULT_MAX_VERSIONS) -> list[str]:
    """Keep stable tags in their original order, at most ``limit`` of them."""
    stable: list[str] = []
    for tag in tags:
        if len(stable) >= limit:
            break
        if not is_prerelease_tag(tag):
            stable.append(tag)
    return stable


def stable_versions(releases: Any, limit: int = DEFAULT_MAX_VERSIONS) -> list[str]:
    if not isinstance(releases, list):
        raise NetworkError(
            "Release listing has an unexpected shape.",
            hint="The API should return a JSON array of releases.",
        )
    tags = [
        str(release["tag_name"])
        for release in releases
        if isinstance(release, dict)
        and release.get("tag_name")
        and not release.get("draft")
        and not release.get("prerelease")
    ]
    return filter_stable_tags(tags, limit)


def _get_json(url: str, timeout: float) -> Any:
    request = Request(
        url,
        headers={"User-Agent": USER_AGENT, "Accept": "application/vnd.github+json"},
    )
    try:
        with urlopen(request, timeout=timeout) as response:  # noqa: S310 - fixed API endpoints
            payload = response.read()
    except (OSError, http.client.HTTPException) as exc:
        raise NetworkError(
            "HTTP GET for release listing failed.",
            hint="Check your internet connection.",
            context={"operation": "fetch_versions", "url": url, "reason": str(exc)},
        ) from exc
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise NetworkError(
            "Release listing is not valid JSON.",
            context={"operation": "fetch_versions", "url": url},
        ) from exc


async def fetch_versions(
    api_url: str,
    *,
    max_versions: int = DEFAULT_MAX_VERSIONS,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[str]:
    """Return up to ``max_versions`` stable tags, newest first."""
    releases = await asyncio.to_thread(_get_json, api_url, timeout)
    versions = stable_versions(releases, max_versions)
    logger.debug("Fetched %d stable versions from %s", len(versions), api_url)
    return versions


async def refresh_versions(
    project: Project,
    sink: EventSink,
    *,
    max_versions: int = DEFAULT_MAX_VERSIONS,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[str] | None:
    """Fetch a project's versions and publish them to the UI actor."""
    sink.log(f"\n📡 Fetching {project.display_name} versions from GitHub...\n")
    try:
        versions = await fetch_versions(
            project.releases_api,
            max_versions=max_versions,
            timeout=timeout,
        )
    except NetworkError as exc:
        sink.log(f"⚠️  Could not fetch {project.display_name} versions: {exc}\n")
        sink.notify(
            "Network Error",
            f"Could not fetch {project.display_name} versions.\nCheck your internet connection.",
        )
        return None
    sink.log(f"✓ Loaded {len(versions)} {project.display_name} versions\n")
    sink.emit(VersionListLoaded(kind=project.kind, versions=tuple(versions)))
    return versions


__all__ = [
    "DEFAULT_MAX_VERSIONS",
    "fetch_versions",
    "filter_stable_tags",
    "is_prerelease_tag",
    "refresh_versions",
    "stable_versions",
]
