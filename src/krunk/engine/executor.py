"""
Command execution with per-invocation deadlines.

Every external process krunk starts (provisioning, local commands, remote
commands, file copies) goes through CommandExecutor.run(), which enforces
the deadline, buffers stdout/stderr, measures duration and classifies the
outcome.
"""

import asyncio
import logging
import os
import shlex
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from krunk.core.error_handling import ErrorKind, StepExecutionError

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024
_EXIT_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class Invocation:
    """A concrete external process to start."""
    program: str
    args: Tuple[str, ...] = ()
    cwd: Optional[Path] = None

    @property
    def argv(self) -> Tuple[str, ...]:
        return (self.program, *self.args)

    def __str__(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one process that ran to completion."""
    stdout: bytes
    stderr: bytes
    exit_code: int
    duration: float
    args: Tuple[str, ...]

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class CommandExecutor:
    """
    Runs invocations as subprocesses under a deadline.

    Each process is started in its own session so that a timeout or an
    interrupt can kill the whole process tree (``sh -c`` plus whatever it
    spawned), not just the direct child.
    """

    def __init__(self, reap_timeout: float = 5.0, drain_timeout: float = 1.0):
        """
        Args:
            reap_timeout: Seconds to wait for pipes to drain after a kill
            drain_timeout: Seconds to keep reading output once the process
                exited; detached children it started are left running
        """
        self.reap_timeout = reap_timeout
        self.drain_timeout = drain_timeout

    async def run(self, invocation: Invocation, timeout: float) -> ExecutionResult:
        """
        Run one invocation.

        Args:
            invocation: Program, arguments and working directory
            timeout: Deadline in seconds, measured from this call

        Returns:
            ExecutionResult for a zero exit code

        Raises:
            StepExecutionError: NON_ZERO_EXIT, TIMEOUT or LAUNCH_FAILED
        """
        argv = invocation.argv
        logger.info(f"Running: {invocation}", extra={"argv": list(argv)})
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(invocation.cwd) if invocation.cwd is not None else None,
                start_new_session=True,
            )
        except OSError as e:
            duration = time.monotonic() - start
            logger.error(
                f"Unable to start {invocation}: {e}",
                extra={"argv": list(argv), "duration_s": round(duration, 3)},
            )
            raise StepExecutionError(
                ErrorKind.LAUNCH_FAILED,
                argv,
                stderr=str(e),
                message=f"{list(argv)}: unable to start: {e}",
            ) from e

        stdout_buf, stderr_buf = bytearray(), bytearray()
        stdout_task = asyncio.ensure_future(_collect(proc.stdout, stdout_buf))
        stderr_task = asyncio.ensure_future(_collect(proc.stderr, stderr_buf))
        exit_task = asyncio.ensure_future(_exited(proc))
        pipes = (stdout_task, stderr_task)
        tasks = (exit_task, *pipes)

        try:
            await asyncio.wait({exit_task}, timeout=timeout)
            timed_out = not exit_task.done()
            if timed_out:
                self._kill(proc)
                await asyncio.wait(tasks, timeout=self.reap_timeout)
            else:
                # Children left running by the command may keep the pipes open
                await asyncio.wait(pipes, timeout=self.drain_timeout)
        except asyncio.CancelledError:
            logger.warning(f"Cancelled, killing: {invocation}")
            self._kill(proc)
            for t in tasks:
                t.cancel()
            raise

        duration = time.monotonic() - start
        for t in tasks:
            if not t.done():
                t.cancel()
        stdout, stderr = bytes(stdout_buf), bytes(stderr_buf)
        exit_code = proc.returncode if proc.returncode is not None else -1

        if timed_out:
            outcome = ErrorKind.TIMEOUT.value
        elif exit_code != 0:
            outcome = ErrorKind.NON_ZERO_EXIT.value
        else:
            outcome = "ok"

        log_extra = {
            "argv": list(argv),
            "duration_s": round(duration, 3),
            "exit_code": exit_code,
            "outcome": outcome,
        }
        logger.info(
            f"Completed: {invocation} (duration: {duration:.3f}s, "
            f"exit code: {exit_code}, outcome: {outcome})",
            extra=log_extra,
        )
        stderr_text = stderr.decode("utf-8", errors="replace")
        if stderr_text:
            # Cluster tools write progress to stderr, so this is not an error by itself
            logger.warning(stderr_text.rstrip(), extra={"argv": list(argv)})

        if timed_out:
            logger.error(f"{invocation} exceeded its {timeout}s deadline", extra=log_extra)
            raise StepExecutionError(
                ErrorKind.TIMEOUT,
                argv,
                stderr=stderr_text,
                message=(
                    f"{list(argv)}: timed out after {duration:.3f}s "
                    f"(deadline {timeout}s), stderr={stderr_text.strip()}"
                ),
            )

        result = ExecutionResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration=duration,
            args=argv,
        )
        if exit_code != 0:
            logger.error(f"{invocation} exited with {exit_code}", extra=log_extra)
            raise StepExecutionError(
                ErrorKind.NON_ZERO_EXIT, argv, stderr=stderr_text, result=result
            )
        return result

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process):
        """Kill the whole process group started for proc."""
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass


async def _collect(stream: asyncio.StreamReader, sink: bytearray):
    """Read stream into sink until EOF; whatever arrived survives cancellation."""
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        sink.extend(chunk)


async def _exited(proc: asyncio.subprocess.Process) -> int:
    # proc.wait() can also wait for the pipes to close, so watch the exit status itself
    while proc.returncode is None:
        await asyncio.sleep(_EXIT_POLL_INTERVAL)
    return proc.returncode
