"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across the pipeline and the CLI."""

    INVALID_INPUT = "E_INVALID_INPUT"
    SPAWN_FAILED = "E_SPAWN_FAILED"
    COMMAND_FAILED = "E_COMMAND_FAILED"
    MISSING_TOOLCHAIN = "E_MISSING_TOOLCHAIN"
    NO_ARTIFACTS = "E_NO_ARTIFACTS"
    NETWORK = "E_NETWORK"
    FILESYSTEM = "E_FILESYSTEM"


class NodesmithError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class InvalidInputError(NodesmithError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.INVALID_INPUT, hint=hint, context=context)


class SpawnFailedError(NodesmithError):
    def __init__(
        self,
        message: str,
        *,
        command: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = {"command": command, **(context or {})}
        super().__init__(message, code=ErrorCode.SPAWN_FAILED, hint=hint, context=merged)
        self.command = command


class CommandFailedError(NodesmithError):
    """A command ran but did not exit with status 0.

    Exactly one of ``returncode`` and ``signal`` is set.
    """

    def __init__(
        self,
        *,
        command: str,
        returncode: int | None = None,
        signal: int | None = None,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        if signal is not None:
            status = f"killed by signal {signal}"
        else:
            status = f"exit {returncode}"
        merged = {"command": command, **(context or {})}
        super().__init__(
            f"Command failed ({status}): {command}",
            code=ErrorCode.COMMAND_FAILED,
            hint=hint,
            context=merged,
        )
        self.command = command
        self.returncode = returncode
        self.signal = signal


class MissingToolchainError(NodesmithError):
    def __init__(
        self,
        message: str,
        *,
        tool: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = {"tool": tool, **(context or {})}
        super().__init__(message, code=ErrorCode.MISSING_TOOLCHAIN, hint=hint, context=merged)
        self.tool = tool


class NoArtifactsProducedError(NodesmithError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.NO_ARTIFACTS, hint=hint, context=context)


class NetworkError(NodesmithError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.NETWORK, hint=hint, context=context)


class FilesystemError(NodesmithError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.FILESYSTEM, hint=hint, context=context)


__all__ = [
    "CommandFailedError",
    "ErrorCode",
    "FilesystemError",
    "InvalidInputError",
    "MissingToolchainError",
    "NetworkError",
    "NoArtifactsProducedError",
    "NodesmithError",
    "SpawnFailedError",
]
