"""Public package entrypoint for nodesmith."""

from .config import Settings, load_settings
from .confirm import ConfirmationChannel, ConfirmRequest, ReplySlot
from .dependencies import check_dependencies
from .environment import build_environment, environment_for
from .errors import (
    CommandFailedError,
    ErrorCode,
    FilesystemError,
    InvalidInputError,
    MissingToolchainError,
    NetworkError,
    NodesmithError,
    NoArtifactsProducedError,
    SpawnFailedError,
)
from .events import EventSink, LogLine, Notify, Progress, TaskFinished, VersionListLoaded
from .pipeline import BuildPipeline, PipelineResult
from .projects import BITCOIN, ELECTRS, BuildStrategy, Project
from .releases import fetch_versions, filter_stable_tags
from .runner import CommandRunner
from .session import BuildSession, SessionResult
from .sync import sync_source

__all__ = [
    "BITCOIN",
    "BuildPipeline",
    "BuildSession",
    "BuildStrategy",
    "CommandFailedError",
    "CommandRunner",
    "ConfirmRequest",
    "ConfirmationChannel",
    "ELECTRS",
    "ErrorCode",
    "EventSink",
    "FilesystemError",
    "InvalidInputError",
    "LogLine",
    "MissingToolchainError",
    "NetworkError",
    "NoArtifactsProducedError",
    "NodesmithError",
    "Notify",
    "PipelineResult",
    "Progress",
    "Project",
    "ReplySlot",
    "SessionResult",
    "Settings",
    "SpawnFailedError",
    "TaskFinished",
    "VersionListLoaded",
    "build_environment",
    "check_dependencies",
    "environment_for",
    "fetch_versions",
    "filter_stable_tags",
    "load_settings",
    "sync_source",
]
