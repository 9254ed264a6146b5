"""Per-project build pipeline: sync, configure, compile, collect.

Steps run strictly in order and the first failure aborts the run. Progress
milestones are reported through a :class:`ProgressScale` so a composite
session can place each project's run in its own slice of the overall bar.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from nodesmith.artifacts import collect_artifacts, executables_in, expected_artifacts
from nodesmith.errors import FilesystemError, MissingToolchainError, NoArtifactsProducedError
from nodesmith.events import EventSink, ProgressScale
from nodesmith.observability import StructuredLogger
from nodesmith.projects import BuildStrategy, Project, select_strategy
from nodesmith.runner import CommandRunner
from nodesmith.sync import SyncOutcome, sync_source, validate_tag

logger = logging.getLogger(__name__)

SEPARATOR = "=" * 60

# Fractions of one pipeline run, mapped through the run's ProgressScale.
MILESTONE_STARTED = 0.05
MILESTONE_SYNCED = 0.3
MILESTONE_CONFIGURED = 0.5
MILESTONE_BUILT = 0.85
MILESTONE_COLLECTED = 1.0

CMAKE_CONFIGURE = "cmake -B build -DENABLE_WALLET=OFF -DENABLE_IPC=OFF -DBUILD_GUI=OFF"
AUTOTOOLS_CONFIGURE = "./configure --disable-wallet --without-gui"

# Autotools builds leave binaries next to the sources; some are optional.
AUTOTOOLS_ARTIFACTS = ("bitcoind", "bitcoin-cli", "bitcoin-tx", "bitcoin-wallet", "bitcoin-util")
CARGO_ARTIFACTS = ("electrs",)


@dataclass(frozen=True, slots=True)
class PipelineResult:
    project: str
    version: str
    strategy: BuildStrategy
    sync: SyncOutcome
    output_dir: Path
    artifacts: tuple[Path, ...]


@dataclass(slots=True)
class BuildPipeline:
    runner: CommandRunner
    scale: ProgressScale = field(default_factory=ProgressScale)
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    async def build(
        self,
        project: Project,
        version: str,
        build_root: Path,
        *,
        jobs: int,
        env: Mapping[str, str],
    ) -> PipelineResult:
        """Build ``project`` at ``version`` and return where its binaries went."""
        sink = self.runner.sink
        validate_tag(version)
        strategy = select_strategy(project, version)
        title = f"{project.display_name.upper()} {version}"
        sink.log(f"\n{SEPARATOR}\nCOMPILING {title}\n{SEPARATOR}\n")
        self._milestone(MILESTONE_STARTED)

        if strategy is BuildStrategy.CARGO:
            await self._require_cargo(env)

        _ensure_directory(build_root)
        src_dir = build_root / project.source_dir_name(version)
        outcome = await sync_source(
            src_dir,
            build_root,
            version,
            project.repo_url,
            env=env,
            runner=self.runner,
        )
        self._record(project, version, "sync", "Source synchronized.", {"outcome": outcome})
        self._milestone(MILESTONE_SYNCED)
        _log_environment(sink, env)

        if strategy is BuildStrategy.CMAKE:
            candidates = await self._build_cmake(project, version, src_dir, jobs, env)
        elif strategy is BuildStrategy.AUTOTOOLS:
            candidates = await self._build_autotools(project, version, src_dir, jobs, env)
        else:
            candidates = await self._build_cargo(project, version, src_dir, jobs, env)

        sink.log("\n📋 Collecting binaries...\n")
        output_dir = build_root / "binaries" / project.source_dir_name(version)
        copied = collect_artifacts(candidates, output_dir, sink)
        if not copied:
            sink.log("❌ WARNING: No binaries were copied!\n")
            for candidate in candidates:
                mark = "✓" if candidate.exists() else "❌"
                sink.log(f"  {mark} {candidate}\n")
            raise NoArtifactsProducedError(
                f"{project.display_name} build reported success but produced no binaries.",
                hint="Inspect the build log; the build output layout may have changed.",
                context={
                    "project": project.kind,
                    "version": version,
                    "strategy": strategy.value,
                    "source": str(src_dir),
                },
            )
        self._record(
            project,
            version,
            "collect",
            "Artifacts collected.",
            {"artifacts": [path.name for path in copied]},
        )
        self._milestone(MILESTONE_COLLECTED)

        sink.log(
            f"\n{SEPARATOR}\n✅ {title} COMPILED SUCCESSFULLY!\n{SEPARATOR}\n\n"
            f"📍 Binaries location: {output_dir}\n   Found {len(copied)} binaries\n\n"
        )
        return PipelineResult(
            project=project.kind,
            version=version,
            strategy=strategy,
            sync=outcome,
            output_dir=output_dir,
            artifacts=tuple(copied),
        )

    async def _build_cmake(
        self,
        project: Project,
        version: str,
        src_dir: Path,
        jobs: int,
        env: Mapping[str, str],
    ) -> list[Path]:
        sink = self.runner.sink
        sink.log("\n🔨 Building with CMake...\n")
        sink.log("\n⚙️  Configuring (wallet support disabled for node-only build)...\n")
        await self.runner.run(CMAKE_CONFIGURE, cwd=src_dir, env=env)
        self._record(project, version, "configure", "CMake configure finished.")
        self._milestone(MILESTONE_CONFIGURED)

        sink.log(f"\n🔧 Compiling with {jobs} cores...\n")
        await self.runner.run(f"cmake --build build -j{jobs}", cwd=src_dir, env=env)
        self._record(project, version, "build", "CMake build finished.")
        self._milestone(MILESTONE_BUILT)
        # The set of installed programs differs between releases.
        return executables_in(src_dir / "build" / "bin")

    async def _build_autotools(
        self,
        project: Project,
        version: str,
        src_dir: Path,
        jobs: int,
        env: Mapping[str, str],
    ) -> list[Path]:
        sink = self.runner.sink
        sink.log("\n🔨 Building with Autotools...\n")
        sink.log("\n⚙️  Running autogen.sh...\n")
        await self.runner.run("./autogen.sh", cwd=src_dir, env=env)
        sink.log("\n⚙️  Configuring (wallet support disabled for node-only build)...\n")
        await self.runner.run(AUTOTOOLS_CONFIGURE, cwd=src_dir, env=env)
        self._record(project, version, "configure", "Autotools configure finished.")
        self._milestone(MILESTONE_CONFIGURED)

        sink.log(f"\n🔧 Compiling with {jobs} cores...\n")
        await self.runner.run(f"make -j{jobs}", cwd=src_dir, env=env)
        self._record(project, version, "build", "make finished.")
        self._milestone(MILESTONE_BUILT)
        return expected_artifacts(src_dir / "src", AUTOTOOLS_ARTIFACTS)

    async def _build_cargo(
        self,
        project: Project,
        version: str,
        src_dir: Path,
        jobs: int,
        env: Mapping[str, str],
    ) -> list[Path]:
        sink = self.runner.sink
        sink.log(f"\n🔧 Building with Cargo ({jobs} jobs)...\n")
        if "LIBCLANG_PATH" in env:
            sink.log(f"  LIBCLANG_PATH: {env['LIBCLANG_PATH']}\n")
        self._milestone(MILESTONE_CONFIGURED)
        await self.runner.run(f"cargo build --release --jobs {jobs}", cwd=src_dir, env=env)
        self._record(project, version, "build", "cargo build finished.")
        self._milestone(MILESTONE_BUILT)
        return expected_artifacts(src_dir / "target" / "release", CARGO_ARTIFACTS)

    async def _require_cargo(self, env: Mapping[str, str]) -> None:
        sink = self.runner.sink
        sink.log("\n🔍 Verifying Rust installation...\n")
        cargo = await self.runner.capture(["cargo", "--version"], env=env)
        if cargo is None:
            sink.log("❌ Cargo not found in PATH!\n")
            raise MissingToolchainError(
                "Cargo not found in PATH. Electrs requires Rust/Cargo to compile.",
                tool="cargo",
                hint="Run `nodesmith check-deps` to install Rust, then retry.",
            )
        sink.log(f"✓ Cargo found: {cargo}\n")
        rustc = await self.runner.capture(["rustc", "--version"], env=env)
        if rustc is None:
            sink.log("⚠️  Warning: rustc check failed, but cargo found. Proceeding...\n")
        else:
            sink.log(f"✓ Rustc found: {rustc}\n")

    def _milestone(self, fraction: float) -> None:
        self.scale.report(self.runner.sink, fraction)

    def _record(
        self,
        project: Project,
        version: str,
        phase: str,
        message: str,
        extra: dict[str, object] | None = None,
    ) -> None:
        logger.debug("%s %s: %s", project.kind, phase, message)
        self.logger.log(
            operation="pipeline",
            project=project.kind,
            version=version,
            phase=phase,
            message=message,
            extra=extra,
        )


def _ensure_directory(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(
            "Failed to create build directory.",
            context={"operation": "build", "path": str(path), "reason": str(exc)},
        ) from exc


def _log_environment(sink: EventSink, env: Mapping[str, str]) -> None:
    path_preview = env.get("PATH", "")[:150]
    sink.log(f"\nEnvironment setup:\n  PATH: {path_preview}...\n")


__all__ = ["BuildPipeline", "PipelineResult"]
