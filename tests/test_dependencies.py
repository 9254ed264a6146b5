import asyncio
from pathlib import Path

from conftest import RecordingRunner, log_text, notifications
from nodesmith.confirm import ConfirmationChannel, ConfirmRequest
from nodesmith.dependencies import BREW_PACKAGES, check_dependencies, install_prompt
from nodesmith.events import EventSink

ENV = {"PATH": "/usr/bin:/bin"}
RUST = {"rustc --version": "rustc 1.80.0", "cargo --version": "cargo 1.80.0"}


def _installed(*packages: str) -> dict[str, str]:
    return {f"brew list {package}": package for package in packages}


def _check(
    sink: EventSink,
    runner: RecordingRunner,
    answer: bool | None = None,
) -> tuple[bool, list[ConfirmRequest]]:
    """Run the check, answering every confirmation with ``answer``."""
    confirm = ConfirmationChannel()
    prompts: list[ConfirmRequest] = []

    async def scenario() -> bool:
        task = asyncio.create_task(
            check_dependencies("brew", ENV, sink, confirm, runner=runner)  # type: ignore[arg-type]
        )
        while not task.done():
            request = confirm.poll()
            if request is not None:
                prompts.append(request)
                request.reply.send(bool(answer))
            await asyncio.sleep(0.01)
        return await task

    return asyncio.run(asyncio.wait_for(scenario(), timeout=5)), prompts


def test_everything_installed_needs_no_confirmation(sink: EventSink) -> None:
    runner = RecordingRunner(sink, captures={**_installed(*BREW_PACKAGES), **RUST})

    ready, prompts = _check(sink, runner)

    events = sink.drain()
    assert ready is True
    assert prompts == []
    assert runner.commands == []
    assert "All Homebrew packages are installed" in log_text(events)
    assert [(note.title, note.is_error) for note in notifications(events)] == [
        ("Dependency Check", False)
    ]


def test_declined_install_runs_nothing(sink: EventSink) -> None:
    present = [package for package in BREW_PACKAGES if package not in {"zeromq", "sqlite"}]
    runner = RecordingRunner(sink, captures={**_installed(*present), **RUST})

    ready, prompts = _check(sink, runner, answer=False)

    assert ready is True
    assert [prompt.title for prompt in prompts] == ["Install Missing Dependencies"]
    assert "zeromq, sqlite" in prompts[0].message
    assert runner.commands == []
    assert "Dependencies not installed" in log_text(sink.drain())


def test_failed_install_does_not_stop_the_others(sink: EventSink) -> None:
    present = [package for package in BREW_PACKAGES if package not in {"zeromq", "sqlite"}]
    runner = RecordingRunner(
        sink,
        captures={**_installed(*present), **RUST},
        fail_on=("install zeromq",),
    )

    ready, _ = _check(sink, runner, answer=True)

    assert ready is True
    assert runner.commands == ["brew install zeromq", "brew install sqlite"]
    notes = notifications(sink.drain())
    assert [(note.title, note.is_error) for note in notes] == [
        ("Installation Failed", True),
        ("Dependency Check", False),
    ]


def test_missing_rust_is_installed_and_reprobed(sink: EventSink) -> None:
    runner = RecordingRunner(
        sink,
        captures={**_installed(*BREW_PACKAGES), "brew info rust": "rust: stable"},
    )

    def on_run(command: str, cwd: Path | None) -> None:
        if command == "brew install rust":
            runner.captures.update(RUST)

    runner.on_run = on_run

    ready, _ = _check(sink, runner)

    assert ready is True
    assert runner.commands == ["brew install rust"]
    assert runner.probes.count("rustc --version") == 2


def test_rust_unavailable_from_homebrew(sink: EventSink) -> None:
    runner = RecordingRunner(sink, captures=_installed(*BREW_PACKAGES))

    ready, _ = _check(sink, runner)

    assert ready is False
    assert runner.commands == []
    notes = notifications(sink.drain())
    assert [note.title for note in notes] == ["Rust Installation Failed", "Dependency Check"]
    assert "rustup.rs" in notes[0].message


def test_install_prompt_lists_at_most_five_packages() -> None:
    message = install_prompt(["a", "b", "c", "d", "e", "f", "g"])
    assert "Found 7 missing packages" in message
    assert "a, b, c, d, e, and 2 more" in message

    single = install_prompt(["git"])
    assert "Found 1 missing package:" in single
    assert "more" not in single
