"""Command-line front end.

Usage:
    nodesmith versions bitcoin
    nodesmith build --target both --keep-going --report json
    nodesmith check-deps --yes
"""

from __future__ import annotations

import argparse
import concurrent.futures
import logging
import sys
import time
from collections.abc import Coroutine, Sequence
from typing import Any, TextIO

from nodesmith.config import Settings, load_settings
from nodesmith.confirm import ConfirmationChannel, ConfirmRequest
from nodesmith.dependencies import check_dependencies
from nodesmith.discovery import brew_prefix, find_brew, host_summary
from nodesmith.environment import environment_for
from nodesmith.errors import NodesmithError
from nodesmith.events import (
    Event,
    EventSink,
    LogLine,
    Notify,
    Progress,
    TaskFinished,
    VersionListLoaded,
)
from nodesmith.projects import project_for
from nodesmith.releases import refresh_versions
from nodesmith.runner import CommandRunner
from nodesmith.runtime import BackgroundRuntime
from nodesmith.session import BuildSession, resolve_toolchain_prefix, targets_for

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


class ConsoleActor:
    """Single consumer of the event sink and the confirmation channel.

    Runs on the main thread and never blocks on the pipeline: pending
    events are drained on every :meth:`pump`, and each confirmation is
    answered exactly once.
    """

    def __init__(
        self,
        sink: EventSink,
        confirm: ConfirmationChannel | None = None,
        *,
        assume_yes: bool = False,
        stdout: TextIO | None = None,
        stdin: TextIO | None = None,
    ) -> None:
        self.sink = sink
        self.confirm = confirm
        self.assume_yes = assume_yes
        self.stdout = stdout or sys.stdout
        self.stdin = stdin or sys.stdin
        self.saw_error = False
        self.finished = False

    def pump(self) -> None:
        while (event := self.sink.poll()) is not None:
            self.handle(event)
        if self.confirm is not None:
            while (request := self.confirm.poll()) is not None:
                self.answer(request)

    def handle(self, event: Event) -> None:
        if isinstance(event, LogLine):
            # Written verbatim so carriage-return progress redraws in place.
            self.stdout.write(event.text)
        elif isinstance(event, Progress):
            self.stdout.write(f"[{event.fraction * 100:5.1f}%]\n")
        elif isinstance(event, VersionListLoaded):
            for version in event.versions:
                self.stdout.write(f"{version}\n")
        elif isinstance(event, Notify):
            marker = "ERROR" if event.is_error else "NOTE"
            self.stdout.write(f"\n[{marker}] {event.title}\n{event.message}\n")
            if event.is_error:
                self.saw_error = True
        elif isinstance(event, TaskFinished):
            self.finished = True
        self.stdout.flush()

    def answer(self, request: ConfirmRequest) -> None:
        self.stdout.write(f"\n[CONFIRM] {request.title}\n{request.message}\n")
        if self.assume_yes:
            self.stdout.write("Answering yes (--yes).\n")
            self.stdout.flush()
            request.reply.send(True)
            return
        self.stdout.write("[y/N] ")
        self.stdout.flush()
        line = self.stdin.readline()
        request.reply.send(line.strip().lower() in {"y", "yes"})

    def wait(self, future: concurrent.futures.Future[Any]) -> Any:
        while not future.done():
            self.pump()
            time.sleep(POLL_INTERVAL)
        self.pump()
        return future.result()


def _run_in_background(
    actor: ConsoleActor,
    coro: Coroutine[Any, Any, Any],
) -> tuple[int | None, Any]:
    """Run ``coro`` on a background loop while the actor drives the console.

    Returns ``(EXIT_INTERRUPTED, None)`` on Ctrl-C, after the task has been
    cancelled and its child processes reaped.
    """
    runtime = BackgroundRuntime().start()
    future = runtime.spawn(coro)
    try:
        return None, actor.wait(future)
    except KeyboardInterrupt:
        future.cancel()
        actor.stdout.write("\nInterrupted, cancelling...\n")
        return EXIT_INTERRUPTED, None
    finally:
        runtime.stop()
        if actor.confirm is not None:
            actor.confirm.close()
        actor.pump()
        actor.sink.close()


def cmd_versions(args: argparse.Namespace, settings: Settings) -> int:
    sink = EventSink()
    actor = ConsoleActor(sink)
    project = project_for(args.project)
    code, versions = _run_in_background(
        actor,
        refresh_versions(
            project,
            sink,
            max_versions=settings.max_versions,
            timeout=settings.http_timeout,
        ),
    )
    if code is not None:
        return code
    return EXIT_OK if versions is not None else EXIT_FAILURE


async def _build(
    args: argparse.Namespace,
    settings: Settings,
    sink: EventSink,
) -> bool:
    targets = targets_for(args.target)
    explicit = {"bitcoin": args.bitcoin_version, "electrs": args.electrs_version}
    versions: dict[str, str | None] = {}
    for kind in targets:
        versions[kind] = explicit[kind]
        if versions[kind] is None:
            available = await refresh_versions(
                project_for(kind),
                sink,
                max_versions=settings.max_versions,
                timeout=settings.http_timeout,
            )
            versions[kind] = available[0] if available else None
    session = BuildSession(
        targets,
        versions,
        settings,
        sink,
        CommandRunner(sink),
        toolchain_prefix=resolve_toolchain_prefix(settings),
    )
    result = await session.run()
    return result.succeeded


def cmd_build(args: argparse.Namespace, settings: Settings) -> int:
    sink = EventSink()
    actor = ConsoleActor(sink, assume_yes=args.yes)
    sink.log(f"{host_summary(find_brew())}\n")
    code, succeeded = _run_in_background(actor, _build(args, settings, sink))
    if code is not None:
        return code
    return EXIT_OK if succeeded and not actor.saw_error else EXIT_FAILURE


def cmd_check_deps(args: argparse.Namespace, settings: Settings) -> int:
    brew = find_brew()
    if brew is None:
        print("Homebrew not found. Install it from https://brew.sh first.", file=sys.stderr)
        return EXIT_FAILURE
    sink = EventSink()
    confirm = ConfirmationChannel()
    actor = ConsoleActor(sink, confirm, assume_yes=args.yes)
    env = environment_for("package_manager", settings.toolchain_prefix or brew_prefix(brew))
    code, ready = _run_in_background(actor, check_dependencies(brew, env, sink, confirm))
    if code is not None:
        return code
    return EXIT_OK if ready and not actor.saw_error else EXIT_FAILURE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nodesmith",
        description="Build Bitcoin Core and Electrs from tagged source releases",
    )
    parser.add_argument("--config", help="Path to a YAML settings file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    versions_p = sub.add_parser("versions", help="List recent stable release tags")
    versions_p.add_argument("project", choices=["bitcoin", "electrs"])

    build_p = sub.add_parser("build", help="Fetch, compile and collect binaries")
    build_p.add_argument("--target", choices=["bitcoin", "electrs", "both"], required=True)
    build_p.add_argument("--bitcoin-version", help="Bitcoin Core tag (default: newest stable)")
    build_p.add_argument("--electrs-version", help="Electrs tag (default: newest stable)")
    build_p.add_argument("--jobs", type=int, help="Parallel compile jobs")
    build_p.add_argument("--build-dir", help="Root directory for sources and binaries")
    build_p.add_argument(
        "--keep-going",
        action="store_true",
        help="Build the remaining targets after a failure",
    )
    build_p.add_argument("--report", choices=["json", "cbor"], help="Write a build report")
    build_p.add_argument("--yes", action="store_true", help="Answer yes to every prompt")

    deps_p = sub.add_parser("check-deps", help="Check and install Homebrew dependencies")
    deps_p.add_argument("--yes", action="store_true", help="Install missing packages without asking")
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    if args.command != "build":
        return {}
    return {
        "jobs": args.jobs,
        "build_dir": args.build_dir,
        "continue_on_failure": True if args.keep_going else None,
        "report_format": args.report,
    }


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        settings = load_settings(args.config, overrides=_overrides(args))
    except NodesmithError as exc:
        print(f"Invalid configuration [{exc.code}]: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    if args.command == "versions":
        return cmd_versions(args, settings)
    if args.command == "build":
        return cmd_build(args, settings)
    return cmd_check_deps(args, settings)


__all__ = ["ConsoleActor", "build_parser", "main"]
