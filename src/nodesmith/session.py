"""Composite build session: one or more pipelines run back to back.

The session is the error boundary of a build request. Every typed failure is
turned into a log line and an error notification, the overall progress bar
is split between targets, and exactly one ``TaskFinished`` is emitted per
run however it ends (including cancellation).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from nodesmith.config import Settings
from nodesmith.discovery import brew_prefix, find_brew
from nodesmith.environment import environment_for
from nodesmith.errors import (
    FilesystemError,
    InvalidInputError,
    MissingToolchainError,
    NodesmithError,
)
from nodesmith.events import EventSink, ProgressScale
from nodesmith.observability import StructuredLogger
from nodesmith.pipeline import BuildPipeline, PipelineResult
from nodesmith.projects import Project, project_for, select_strategy
from nodesmith.report import BuildReport
from nodesmith.runner import CommandRunner
from nodesmith.sync import validate_tag

logger = logging.getLogger(__name__)

PLACEHOLDER_VERSION = "Loading..."

TARGETS: dict[str, tuple[str, ...]] = {
    "bitcoin": ("bitcoin",),
    "electrs": ("electrs",),
    "both": ("bitcoin", "electrs"),
}

# Slices of the overall bar when both projects are built in one session.
COMPOSITE_SCALES: dict[str, ProgressScale] = {
    "bitcoin": ProgressScale(0.1, 0.5),
    "electrs": ProgressScale(0.55, 1.0),
}

EnvironmentFactory = Callable[[str, str | None], Mapping[str, str]]


def targets_for(target: str) -> tuple[str, ...]:
    try:
        return TARGETS[target]
    except KeyError as exc:
        raise InvalidInputError(
            f"Unknown build target `{target}`.",
            hint=f"Choose one of: {', '.join(TARGETS)}.",
        ) from exc


def resolve_toolchain_prefix(settings: Settings) -> str | None:
    if settings.toolchain_prefix:
        return settings.toolchain_prefix
    brew = find_brew()
    return brew_prefix(brew) if brew else None


def failure_title(error: NodesmithError) -> str:
    if isinstance(error, MissingToolchainError):
        return "Toolchain Not Found"
    if isinstance(error, InvalidInputError):
        return "Invalid Version"
    return "Compilation Failed"


@dataclass(frozen=True, slots=True)
class SessionResult:
    results: tuple[PipelineResult, ...] = ()
    failures: tuple[NodesmithError, ...] = ()
    reports: tuple[Path, ...] = ()

    @property
    def succeeded(self) -> bool:
        return not self.failures

    @property
    def output_dirs(self) -> list[Path]:
        return [result.output_dir for result in self.results]


class BuildSession:
    def __init__(
        self,
        targets: Sequence[str],
        versions: Mapping[str, str | None],
        settings: Settings,
        sink: EventSink,
        runner: CommandRunner | None = None,
        *,
        toolchain_prefix: str | None = None,
        environment: EnvironmentFactory = environment_for,
        structured_logger: StructuredLogger | None = None,
    ) -> None:
        self.targets = tuple(targets)
        self.versions = dict(versions)
        self.settings = settings
        self.sink = sink
        self.runner = runner or CommandRunner(sink)
        self.toolchain_prefix = toolchain_prefix or settings.toolchain_prefix
        self.environment = environment
        self.structured_logger = structured_logger or StructuredLogger()

    def plan(self) -> list[tuple[Project, str]]:
        """Resolve every target to a project and its selected version.

        Fails before anything runs when any target lacks a usable version
        or carries a tag that is unsafe to pass to the shell.
        """
        if not self.targets:
            raise InvalidInputError("No build target selected.")
        planned: list[tuple[Project, str]] = []
        for kind in self.targets:
            project = project_for(kind)
            version = (self.versions.get(kind) or "").strip()
            if not version or version == PLACEHOLDER_VERSION:
                raise InvalidInputError(
                    f"No {project.display_name} version selected.",
                    hint="Wait for the version list to load, or pass a version explicitly.",
                    context={"project": kind},
                )
            planned.append((project, validate_tag(version)))
        return planned

    def scale_for(self, project: Project) -> ProgressScale:
        if len(self.targets) == 1:
            return ProgressScale()
        return COMPOSITE_SCALES.get(project.kind, ProgressScale())

    async def run(self) -> SessionResult:
        results: list[PipelineResult] = []
        failures: list[NodesmithError] = []
        reports: list[Path] = []
        try:
            try:
                plan = self.plan()
            except InvalidInputError as exc:
                self._report_failure(exc)
                failures.append(exc)
                return SessionResult(failures=tuple(failures))

            self.sink.progress(0.0)
            for project, version in plan:
                if failures and not self.settings.continue_on_failure:
                    break
                scale = self.scale_for(project)
                self.sink.progress(scale.start)
                try:
                    result = await self._build_one(project, version, scale)
                    report = self._write_report(result)
                except NodesmithError as exc:
                    self._report_failure(exc)
                    failures.append(exc)
                    continue
                results.append(result)
                if report is not None:
                    reports.append(report)

            if not failures:
                self.sink.progress(1.0)
                dirs = "\n".join(f"• {result.output_dir}" for result in results)
                self.sink.notify(
                    "Compilation Complete",
                    f"✅ {self._label()} compilation completed successfully!\n\n"
                    f"Binaries saved to:\n{dirs}",
                )
            return SessionResult(
                results=tuple(results),
                failures=tuple(failures),
                reports=tuple(reports),
            )
        finally:
            self.sink.finished()

    async def _build_one(
        self,
        project: Project,
        version: str,
        scale: ProgressScale,
    ) -> PipelineResult:
        strategy = select_strategy(project, version)
        env = self.environment(strategy.value, self.toolchain_prefix)
        pipeline = BuildPipeline(self.runner, scale=scale, logger=self.structured_logger)
        return await pipeline.build(
            project,
            version,
            self.settings.build_dir,
            jobs=self.settings.jobs,
            env=env,
        )

    def _write_report(self, result: PipelineResult) -> Path | None:
        report_format = self.settings.report_format
        if report_format is None:
            return None
        reports_dir = self.settings.build_dir / "reports"
        try:
            report = BuildReport.from_artifacts(
                project=result.project,
                version=result.version,
                strategy=result.strategy.value,
                output_dir=result.output_dir,
                artifacts=list(result.artifacts),
                logs=self.structured_logger.records_for_project(result.project),
            )
            path = report.write(reports_dir, report_format)
        except OSError as exc:
            raise FilesystemError(
                "Failed to write build report.",
                context={"path": str(reports_dir), "reason": str(exc)},
            ) from exc
        self.sink.log(f"📝 Build report written to {path}\n")
        return path

    def _report_failure(self, error: NodesmithError) -> None:
        logger.debug("Session failure [%s]: %s", error.code, error)
        self.sink.log(f"\n❌ Compilation failed: {error}\n")
        self.sink.notify(failure_title(error), str(error), is_error=True)

    def _label(self) -> str:
        return " + ".join(project_for(kind).display_name for kind in self.targets)


__all__ = [
    "BuildSession",
    "COMPOSITE_SCALES",
    "SessionResult",
    "TARGETS",
    "failure_title",
    "resolve_toolchain_prefix",
    "targets_for",
]
