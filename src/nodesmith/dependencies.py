"""Homebrew dependency check with optional, user-confirmed installation."""

from __future__ import annotations

import logging
import shlex
from collections.abc import Mapping, Sequence

from nodesmith.confirm import ConfirmationChannel
from nodesmith.errors import NodesmithError
from nodesmith.events import EventSink
from nodesmith.runner import CommandRunner

logger = logging.getLogger(__name__)

# Needed by Bitcoin Core (both build systems) and by Electrs.
BREW_PACKAGES = (
    "automake",
    "libtool",
    "pkg-config",
    "boost",
    "miniupnpc",
    "zeromq",
    "sqlite",
    "python",
    "cmake",
    "llvm",
    "libevent",
    "rocksdb",
    "rust",
    "git",
)

PREVIEW_LIMIT = 5

RUSTUP_INSTRUCTIONS = (
    "Please install manually:\n"
    "1. Visit https://rustup.rs\n"
    "2. Run: curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh\n"
    "3. Restart nodesmith"
)


def install_prompt(missing: Sequence[str]) -> str:
    count = len(missing)
    preview = ", ".join(missing[:PREVIEW_LIMIT])
    extra = f", and {count - PREVIEW_LIMIT} more" if count > PREVIEW_LIMIT else ""
    plural = "" if count == 1 else "s"
    return (
        f"Found {count} missing package{plural}:\n\n{preview}{extra}\n\n"
        "Install all missing packages now?"
    )


async def missing_packages(
    brew: str,
    *,
    env: Mapping[str, str],
    runner: CommandRunner,
    packages: Sequence[str] = BREW_PACKAGES,
) -> list[str]:
    sink = runner.sink
    missing: list[str] = []
    for package in packages:
        if await runner.capture([brew, "list", package], env=env) is None:
            sink.log(f"  ❌ {package} - not installed\n")
            missing.append(package)
        else:
            sink.log(f"  ✓ {package}\n")
    return missing


async def check_dependencies(
    brew: str,
    env: Mapping[str, str],
    sink: EventSink,
    confirm: ConfirmationChannel,
    *,
    runner: CommandRunner | None = None,
    packages: Sequence[str] = BREW_PACKAGES,
) -> bool:
    """Probe required packages, offer to install the missing ones, check Rust.

    Returns ``True`` when the Rust toolchain is usable. A summary
    notification is always emitted at the end, whatever the outcome.
    """
    runner = runner or CommandRunner(sink)
    sink.log("\n=== Checking System Dependencies ===\n")
    sink.log(f"✓ Homebrew found at: {brew}\n")
    sink.log("\nChecking Homebrew packages...\n")

    missing = await missing_packages(brew, env=env, runner=runner, packages=packages)
    if not missing:
        sink.log("\n✓ All Homebrew packages are installed!\n")
    else:
        sink.log(f"\n⚠️  Missing Homebrew packages: {', '.join(missing)}\n")
        if await confirm.request("Install Missing Dependencies", install_prompt(missing)):
            for package in missing:
                await _install(brew, package, env=env, runner=runner)
        else:
            sink.log("\n⚠️  Dependencies not installed. Compilation may fail.\n")

    rust_ok = await check_rust(brew, env=env, runner=runner)
    sink.log("\n=== Dependency Check Complete ===\n")
    if rust_ok:
        sink.log("\n✓ Rust toolchain is ready!\n")
        sink.notify(
            "Dependency Check",
            "✅ All dependencies are installed and ready!\n\n"
            "You can now proceed with compilation.",
        )
    else:
        sink.log("\n⚠️  Rust toolchain needs attention (see messages above)\n")
        sink.notify(
            "Dependency Check",
            "⚠️  Some dependencies need attention.\n\nCheck the log for details.\n"
            "You may need to restart your shell after installing Rust.",
        )
    return rust_ok


async def _install(
    brew: str,
    package: str,
    *,
    env: Mapping[str, str],
    runner: CommandRunner,
) -> bool:
    sink = runner.sink
    sink.log(f"\n📦 Installing {package}...\n")
    try:
        await runner.run(f"{shlex.quote(brew)} install {shlex.quote(package)}", env=env)
    except NodesmithError as exc:
        # One failed formula should not stop the remaining installs.
        logger.warning("Installing %s failed: %s", package, exc)
        sink.log(f"❌ Failed to install {package}: {exc}\n")
        sink.notify("Installation Failed", f"Failed to install {package}:\n{exc}", is_error=True)
        return False
    sink.log(f"✓ {package} installed successfully\n")
    return True


async def probe_rust(*, env: Mapping[str, str], runner: CommandRunner) -> bool:
    sink = runner.sink
    found = True
    for tool in ("rustc", "cargo"):
        version = await runner.capture([tool, "--version"], env=env)
        if version is None:
            sink.log(f"❌ {tool} not found in PATH\n")
            found = False
        else:
            sink.log(f"✓ {tool} found: {version}\n")
    return found


async def check_rust(brew: str, *, env: Mapping[str, str], runner: CommandRunner) -> bool:
    """Ensure ``rustc`` and ``cargo`` run, installing Rust with Homebrew if needed."""
    sink = runner.sink
    sink.log("\n=== Checking Rust Toolchain ===\n")
    if await probe_rust(env=env, runner=runner):
        return True

    sink.log("\n❌ Rust toolchain not found or incomplete!\n")
    sink.log("Installing Rust via Homebrew...\n")
    if await runner.capture([brew, "info", "rust"], env=env) is None:
        sink.log("❌ Rust formula not found in Homebrew\n")
        sink.notify(
            "Rust Installation Failed",
            f"Could not install Rust via Homebrew.\n\n{RUSTUP_INSTRUCTIONS}",
            is_error=True,
        )
        return False

    if not await _install(brew, "rust", env=env, runner=runner):
        return False

    sink.log("\nVerifying Rust installation...\n")
    if await probe_rust(env=env, runner=runner):
        return True
    sink.log("⚠️  Rust installation may have succeeded but binaries not found in PATH\n")
    sink.notify(
        "Rust Installation Issue",
        "Rust was installed but may not be in PATH.\n\n"
        "Please open a new shell, or add ~/.cargo/bin to your PATH.",
        is_error=True,
    )
    return False


__all__ = [
    "BREW_PACKAGES",
    "check_dependencies",
    "check_rust",
    "install_prompt",
    "missing_packages",
    "probe_rust",
]
