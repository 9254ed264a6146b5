"""Deterministic child-process environments per target toolchain.

Each builder returns a fresh ``dict``; the base mapping (``os.environ`` by
default) is never mutated. The only side effects are reading the base
environment and checking whether candidate directories exist.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterable, Mapping
from typing import Literal

ToolchainKind = Literal["cmake", "autotools", "cargo", "package_manager"]

# Both Apple Silicon and Intel Homebrew prefixes, whichever was detected.
HOMEBREW_PREFIXES = ("/opt/homebrew", "/usr/local")
SYSTEM_FALLBACK_PATHS = ("/usr/bin", "/bin", "/usr/sbin", "/sbin")
PKG_CONFIG_FORMULAE = ("libevent", "zeromq", "sqlite", "miniupnpc", "boost")
SYSTEM_PKG_CONFIG_DIRS = ("/usr/lib/pkgconfig", "/usr/share/pkgconfig")

DirectoryProbe = Callable[[str], bool]


def dedupe_paths(parts: Iterable[str]) -> list[str]:
    """Drop empty and repeated entries, keeping the first occurrence."""
    seen: set[str] = set()
    result: list[str] = []
    for part in parts:
        if part and part not in seen:
            seen.add(part)
            result.append(part)
    return result


def split_path_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [part for part in value.split(os.pathsep) if part]


def dynamic_library_var() -> str:
    return "DYLD_LIBRARY_PATH" if sys.platform == "darwin" else "LD_LIBRARY_PATH"


def llvm_candidates(toolchain_prefix: str | None) -> list[str]:
    candidates = [f"{toolchain_prefix}/opt/llvm"] if toolchain_prefix else []
    candidates.extend(f"{prefix}/opt/llvm" for prefix in HOMEBREW_PREFIXES)
    return dedupe_paths(candidates)


def find_llvm_prefix(
    toolchain_prefix: str | None,
    *,
    is_dir: DirectoryProbe = os.path.isdir,
) -> str | None:
    for candidate in llvm_candidates(toolchain_prefix):
        if is_dir(f"{candidate}/bin"):
            return candidate
    return None


def pkg_config_dirs(toolchain_prefix: str | None) -> list[str]:
    prefixes = dedupe_paths([toolchain_prefix or "", *HOMEBREW_PREFIXES])
    dirs: list[str] = []
    for prefix in prefixes:
        dirs.append(f"{prefix}/lib/pkgconfig")
        dirs.append(f"{prefix}/share/pkgconfig")
        dirs.extend(f"{prefix}/opt/{formula}/lib/pkgconfig" for formula in PKG_CONFIG_FORMULAE)
    dirs.extend(SYSTEM_PKG_CONFIG_DIRS)
    return dedupe_paths(dirs)


def build_environment(
    toolchain_prefix: str | None = None,
    *,
    base: Mapping[str, str] | None = None,
    is_dir: DirectoryProbe = os.path.isdir,
) -> dict[str, str]:
    """Return the common environment with an ordered, deduplicated ``PATH``.

    ``PATH`` order: toolchain prefix ``bin``, both Homebrew ``bin``
    directories, ``~/.cargo/bin`` when present, the first LLVM ``bin`` found,
    the inherited ``PATH``, then fixed OS fallbacks.
    """
    env = dict(os.environ if base is None else base)
    home = env.get("HOME") or os.path.expanduser("~")

    parts: list[str] = []
    if toolchain_prefix:
        parts.append(f"{toolchain_prefix}/bin")
    parts.extend(f"{prefix}/bin" for prefix in HOMEBREW_PREFIXES)

    cargo_bin = f"{home}/.cargo/bin"
    if is_dir(cargo_bin):
        parts.append(cargo_bin)

    llvm_prefix = find_llvm_prefix(toolchain_prefix, is_dir=is_dir)
    if llvm_prefix is not None:
        parts.append(f"{llvm_prefix}/bin")

    parts.extend(split_path_list(env.get("PATH")))
    parts.extend(SYSTEM_FALLBACK_PATHS)

    env["PATH"] = os.pathsep.join(dedupe_paths(parts))
    return env


def cmake_environment(
    toolchain_prefix: str | None = None,
    *,
    base: Mapping[str, str] | None = None,
    is_dir: DirectoryProbe = os.path.isdir,
) -> dict[str, str]:
    """Environment for CMake builds.

    ``TERM`` is left alone: with a dumb terminal CMake buffers its configure
    output and the log goes silent for minutes.
    """
    env = build_environment(toolchain_prefix, base=base, is_dir=is_dir)
    _merge_pkg_config_path(env, toolchain_prefix)
    return env


def autotools_environment(
    toolchain_prefix: str | None = None,
    *,
    base: Mapping[str, str] | None = None,
    is_dir: DirectoryProbe = os.path.isdir,
) -> dict[str, str]:
    env = build_environment(toolchain_prefix, base=base, is_dir=is_dir)
    _merge_pkg_config_path(env, toolchain_prefix)
    _force_plain_output(env)
    return env


def cargo_environment(
    toolchain_prefix: str | None = None,
    *,
    base: Mapping[str, str] | None = None,
    is_dir: DirectoryProbe = os.path.isdir,
) -> dict[str, str]:
    """Environment for Cargo builds that generate bindings against libclang."""
    env = build_environment(toolchain_prefix, base=base, is_dir=is_dir)
    llvm_prefix = find_llvm_prefix(toolchain_prefix, is_dir=is_dir)
    if llvm_prefix is not None:
        lib_dir = f"{llvm_prefix}/lib"
        env["LIBCLANG_PATH"] = lib_dir
        env[dynamic_library_var()] = lib_dir
    env["CARGO_TERM_COLOR"] = "never"
    _force_plain_output(env)
    return env


def package_manager_environment(
    toolchain_prefix: str | None = None,
    *,
    base: Mapping[str, str] | None = None,
    is_dir: DirectoryProbe = os.path.isdir,
) -> dict[str, str]:
    env = build_environment(toolchain_prefix, base=base, is_dir=is_dir)
    env["HOMEBREW_NO_COLOR"] = "1"
    env["HOMEBREW_NO_EMOJI"] = "1"
    env["HOMEBREW_NO_ENV_HINTS"] = "1"
    env["NONINTERACTIVE"] = "1"
    _force_plain_output(env)
    return env


_BUILDERS: dict[ToolchainKind, Callable[..., dict[str, str]]] = {
    "cmake": cmake_environment,
    "autotools": autotools_environment,
    "cargo": cargo_environment,
    "package_manager": package_manager_environment,
}


def environment_for(
    kind: ToolchainKind,
    toolchain_prefix: str | None = None,
    *,
    base: Mapping[str, str] | None = None,
    is_dir: DirectoryProbe = os.path.isdir,
) -> dict[str, str]:
    return _BUILDERS[kind](toolchain_prefix, base=base, is_dir=is_dir)


def _merge_pkg_config_path(env: dict[str, str], toolchain_prefix: str | None) -> None:
    # Without this, configure falls back to compiling probe programs for every
    # dependency instead of reading the .pc metadata.
    existing = split_path_list(env.get("PKG_CONFIG_PATH"))
    merged = dedupe_paths([*existing, *pkg_config_dirs(toolchain_prefix)])
    env["PKG_CONFIG_PATH"] = os.pathsep.join(merged)


def _force_plain_output(env: dict[str, str]) -> None:
    env["TERM"] = "dumb"
    env["NO_COLOR"] = "1"
    env["CLICOLOR"] = "0"


__all__ = [
    "HOMEBREW_PREFIXES",
    "SYSTEM_FALLBACK_PATHS",
    "ToolchainKind",
    "autotools_environment",
    "build_environment",
    "cargo_environment",
    "cmake_environment",
    "dedupe_paths",
    "dynamic_library_var",
    "environment_for",
    "find_llvm_prefix",
    "package_manager_environment",
    "pkg_config_dirs",
    "split_path_list",
]
