"""Run external media tools with independent write and read budgets."""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import Sequence
from dataclasses import dataclass

from .errors import ProcessError

logger = logging.getLogger(__name__)

DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 10.0


@dataclass(frozen=True)
class ProcessResult:
    success: bool
    stdout: bytes = b""
    stderr: str = ""
    returncode: int | None = None


class ProcessRunner:
    """Spawns one tool per call and always reaps it before returning.

    Subclass or replace this to feed the media stages canned output in
    tests; the stages only ever call :meth:`run`.
    """

    async def run(
        self,
        tool: str,
        args: Sequence[str],
        *,
        input_bytes: bytes | None = None,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        capture_stdout: bool = True,
        check: bool = True,
    ) -> ProcessResult:
        """Run *tool* with *args*, optionally writing *input_bytes* to its stdin.

        Raises :class:`ProcessError` if the tool cannot be spawned, a budget
        is exceeded, or (with *check*) it exits nonzero.
        """
        logger.debug("Running %s %s", tool, shlex.join(args))
        try:
            proc = await asyncio.create_subprocess_exec(
                tool,
                *args,
                stdin=asyncio.subprocess.PIPE if input_bytes is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE if capture_stdout else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ProcessError(tool, "spawn", str(exc)) from exc

        # Drain output while input is still being written so a tool that
        # fills its stdout pipe cannot stall the writer.
        stdout_task = asyncio.create_task(proc.stdout.read()) if proc.stdout else None
        stderr_task = asyncio.create_task(proc.stderr.read()) if proc.stderr else None
        try:
            if input_bytes is not None:
                await self._feed(tool, proc, input_bytes, write_timeout)

            pending = [t for t in (stdout_task, stderr_task) if t is not None]
            try:
                await asyncio.wait_for(asyncio.gather(*pending, proc.wait()), timeout=read_timeout)
            except TimeoutError as exc:
                raise ProcessError(tool, "wait", "timeout") from exc
            except OSError as exc:
                raise ProcessError(tool, "read", str(exc)) from exc
        finally:
            await self._reap(proc, stdout_task, stderr_task)

        stdout = stdout_task.result() if stdout_task else b""
        stderr = stderr_task.result().decode(errors="replace").strip() if stderr_task else ""
        returncode = proc.returncode
        if returncode != 0 and check:
            raise ProcessError(tool, "wait", f"exit status {returncode}", stderr=stderr)
        return ProcessResult(
            success=returncode == 0,
            stdout=stdout,
            stderr=stderr,
            returncode=returncode,
        )

    @staticmethod
    async def _feed(
        tool: str,
        proc: asyncio.subprocess.Process,
        data: bytes,
        timeout: float,
    ) -> None:
        stdin = proc.stdin
        if stdin is None:
            return
        try:
            stdin.write(data)
            await asyncio.wait_for(stdin.drain(), timeout=timeout)
        except (BrokenPipeError, ConnectionResetError):
            # Probers stop reading once they have seen enough of the header.
            logger.debug("%s closed stdin before reading all %d bytes", tool, len(data))
        except TimeoutError as exc:
            raise ProcessError(tool, "write", "timeout") from exc
        except OSError as exc:
            raise ProcessError(tool, "write", str(exc)) from exc
        finally:
            stdin.close()

    @staticmethod
    async def _reap(
        proc: asyncio.subprocess.Process,
        *tasks: asyncio.Task[bytes] | None,
    ) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
        for task in tasks:
            if task is not None and not task.done():
                task.cancel()
