"""Shell command execution with live, lossless output streaming.

Every external tool invocation goes through :class:`CommandRunner`. The child
runs under ``/bin/sh -c`` with its environment replaced entirely by the given
mapping, and both of its output pipes are drained concurrently so a child
that fills one pipe can never deadlock against a reader blocked on the other.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import cast
from pathlib import Path

from nodesmith.errors import CommandFailedError, SpawnFailedError
from nodesmith.events import EventSink

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class StreamDecoder:
    """Incremental permissive UTF-8 decoder for one output stream.

    Invalid sequences become U+FFFD. ``\\r\\n`` collapses to ``\\n`` even when
    the pair straddles two chunks; a bare ``\\r`` passes through so consumers
    can redraw the current line the way a terminal does.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending_cr = False

    def feed(self, data: bytes, *, final: bool = False) -> str:
        text = self._decoder.decode(data, final=final)
        if self._pending_cr:
            text = "\r" + text
            self._pending_cr = False
        if not final and text.endswith("\r"):
            text = text[:-1]
            self._pending_cr = True
        return text.replace("\r\n", "\n")


async def _drain(stream: asyncio.StreamReader, sink: EventSink, chunk_size: int) -> None:
    decoder = StreamDecoder()
    while chunk := await stream.read(chunk_size):
        text = decoder.feed(chunk)
        if text:
            sink.log(text)
    tail = decoder.feed(b"", final=True)
    if tail:
        sink.log(tail)


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


@dataclass(slots=True)
class CommandRunner:
    sink: EventSink
    shell: str = "/bin/sh"
    chunk_size: int = CHUNK_SIZE

    async def run(
        self,
        command: str,
        *,
        env: Mapping[str, str],
        cwd: Path | None = None,
        echo: bool = True,
    ) -> None:
        """Run ``command`` in a shell, streaming output to the sink.

        Returns only when the exit status is exactly 0; raises
        :class:`CommandFailedError` otherwise and :class:`SpawnFailedError`
        when the shell could not be started. Cancelling the calling task
        kills the child and everything it spawned.
        """
        if echo:
            self.sink.log(f"\n$ {command}\n")
        logger.debug("Spawning %r (cwd=%s)", command, cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                self.shell,
                "-c",
                command,
                cwd=str(cwd) if cwd is not None else None,
                env=dict(env),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise SpawnFailedError(
                f"Failed to spawn: {command}",
                command=command,
                hint="Check that the working directory exists and the shell is available.",
                context={"cwd": str(cwd) if cwd is not None else "", "reason": str(exc)},
            ) from exc

        # Both pipes exist: they were requested as PIPE above.
        stdout = cast(asyncio.StreamReader, process.stdout)
        stderr = cast(asyncio.StreamReader, process.stderr)
        drains = (
            asyncio.create_task(_drain(stdout, self.sink, self.chunk_size)),
            asyncio.create_task(_drain(stderr, self.sink, self.chunk_size)),
        )
        completed = False
        try:
            returncode = await process.wait()
            await asyncio.gather(*drains)
            completed = True
        finally:
            if not completed:
                logger.debug("Killing %r (pid=%s)", command, process.pid)
                _kill_process_group(process)
                if process.returncode is None:
                    await process.wait()
                for task in drains:
                    task.cancel()

        logger.debug("%r exited with %s", command, returncode)
        if returncode == 0:
            return
        if returncode < 0:
            raise CommandFailedError(command=command, signal=-returncode)
        raise CommandFailedError(command=command, returncode=returncode)

    async def capture(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str],
        cwd: Path | None = None,
    ) -> str | None:
        """Run a probe command quietly and return its stripped stdout.

        Returns ``None`` when the program is absent or exits non-zero. Nothing
        is forwarded to the sink.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd is not None else None,
                env=dict(env),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            logger.debug("Probe %s could not start: %s", argv[0], exc)
            return None
        try:
            stdout, _ = await process.communicate()
        finally:
            if process.returncode is None:
                _kill_process_group(process)
                await process.wait()
        if process.returncode != 0:
            return None
        return stdout.decode("utf-8", errors="replace").strip()


__all__ = ["CHUNK_SIZE", "CommandRunner", "StreamDecoder"]
