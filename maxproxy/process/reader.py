"""Runs the ``claude`` CLI under a PTY wrapper and streams its output as events."""

import asyncio
import codecs
import contextlib
import logging
import os
import signal
from typing import AsyncIterator, Mapping, Optional, Sequence

from ..core.exceptions import ProcessError, ProcessNotFoundError, ProcessTimeoutError
from .protocol import LineBuffer, SubprocessEvent, SubprocessEventType, classify_line, strip_control_sequences

logger = logging.getLogger("maxproxy")

DEFAULT_TIMEOUT_MS = 300_000
DEFAULT_QUEUE_SIZE = 256
READ_CHUNK_SIZE = 4096
# Seconds between SIGTERM on timeout and the SIGKILL fallback
KILL_GRACE_SECONDS = 5.0

WRAPPER_INSTALL_HINTS = {"unbuffer": "brew install expect"}


def build_cli_args(prompt: str, model: str, session_id: Optional[str] = None) -> list[str]:
    args = [
        "--print",
        "--output-format",
        "stream-json",
        "--verbose",
        "--model",
        model,
        "--no-session-persistence",
        prompt,
    ]
    if session_id:
        args.extend(["--session-id", session_id])
    return args


class CliProcess:
    """One child process and the event stream read from its stdout.

    Events are delivered in line order through a bounded queue, so a slow
    consumer stalls the reader and, through the pipe, the child. A CLOSE
    event always ends the stream; ERROR events (timeout, missing binary)
    precede it.
    """

    def __init__(
        self,
        command: str = "claude",
        wrapper: Optional[str] = "unbuffer",
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        cwd: Optional[str] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.command = command
        self.wrapper = wrapper
        self.timeout_ms = timeout_ms
        self.cwd = cwd
        self.env = dict(env) if env is not None else None
        # room for the error/close pair emitted before anyone consumes
        self._queue: asyncio.Queue[SubprocessEvent] = asyncio.Queue(maxsize=max(queue_size, 2))
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._started = False
        self._killed = False
        self._timed_out = False
        self._exit_code: Optional[int] = None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    def build_argv(self, prompt: str, model: str, session_id: Optional[str] = None) -> list[str]:
        argv = [self.command, *build_cli_args(prompt, model, session_id)]
        if self.wrapper:
            argv.insert(0, self.wrapper)
        return argv

    async def start(self, prompt: str, model: str, session_id: Optional[str] = None) -> None:
        await self.spawn(self.build_argv(prompt, model, session_id))

    async def spawn(self, argv: Sequence[str]) -> None:
        """Launch ``argv`` with stdin closed and begin reading stdout.

        A missing executable is reported as an ERROR event followed by
        CLOSE(None) rather than raised.
        """
        if self._started:
            raise RuntimeError("process already started")
        self._started = True

        env = None
        if self.env is not None:
            env = {**os.environ, **self.env}
        logger.info("Spawning CLI process: %s (timeout %sms)", argv[0], self.timeout_ms)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=env,
            )
        except FileNotFoundError:
            hint = WRAPPER_INSTALL_HINTS.get(os.path.basename(argv[0]))
            message = f"{argv[0]} not found"
            if hint:
                message = f"{message}. Install: {hint}"
            logger.error("Failed to spawn CLI process: %s", message)
            self._queue.put_nowait(SubprocessEvent.failure(ProcessNotFoundError(message)))
            self._queue.put_nowait(SubprocessEvent.close(None))
            return
        except OSError as exc:
            logger.error("Failed to spawn CLI process: %s", exc)
            self._queue.put_nowait(SubprocessEvent.failure(ProcessError(f"Failed to start {argv[0]}: {exc}")))
            self._queue.put_nowait(SubprocessEvent.close(None))
            return

        self._watchdog_task = asyncio.create_task(self._watchdog())
        self._reader_task = asyncio.create_task(self._read_stdout())

    async def events(self) -> AsyncIterator[SubprocessEvent]:
        """Yield events in order, ending after CLOSE."""
        if not self._started:
            raise RuntimeError("process not started")
        while True:
            event = await self._queue.get()
            yield event
            if event.type is SubprocessEventType.CLOSE:
                return

    def is_running(self) -> bool:
        return (
            self._process is not None
            and self._process.returncode is None
            and not self._killed
        )

    def kill(self, sig: int = signal.SIGTERM) -> bool:
        """Signal the child once; later calls and calls after exit do nothing."""
        if not self.is_running():
            return False
        self._killed = True
        self._cancel_watchdog()
        self._send_signal(sig)
        return True

    async def aclose(self) -> None:
        """Kill the child if needed and wait for it so no handles leak."""
        self.kill()
        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
        self._cancel_watchdog()
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            await asyncio.wait_for(process.wait(), KILL_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("CLI process %s ignored SIGTERM; sending SIGKILL", process.pid)
            self._send_signal(signal.SIGKILL)
            await process.wait()

    def _send_signal(self, sig: int) -> None:
        if self._process is None:
            return
        try:
            self._process.send_signal(sig)
        except ProcessLookupError:
            logger.debug("CLI process %s already exited", self._process.pid)

    def _cancel_watchdog(self) -> None:
        if self._watchdog_task is not None and not self._watchdog_task.done():
            if self._watchdog_task is not asyncio.current_task():
                self._watchdog_task.cancel()

    async def _watchdog(self) -> None:
        await asyncio.sleep(self.timeout_ms / 1000)
        if not self.is_running():
            return
        self._killed = True
        self._timed_out = True
        logger.warning("CLI process %s timed out after %sms", self.pid, self.timeout_ms)
        self._send_signal(signal.SIGTERM)
        await self._queue.put(SubprocessEvent.failure(ProcessTimeoutError(self.timeout_ms)))
        await asyncio.sleep(KILL_GRACE_SECONDS)
        if self._process is not None and self._process.returncode is None:
            self._send_signal(signal.SIGKILL)

    async def _drain_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        async for line in self._process.stderr:
            logger.debug("CLI stderr: %s", line.decode("utf-8", errors="replace").rstrip())

    async def _emit_line(self, line: str) -> None:
        event = classify_line(line)
        if event is None:
            return
        if event.type is SubprocessEventType.RAW:
            logger.debug("CLI emitted non-JSON line: %s", event.raw[:100] if event.raw else "")
        await self._queue.put(event)

    async def _read_stdout(self) -> None:
        process = self._process
        assert process is not None and process.stdout is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        lines = LineBuffer()
        stderr_task = asyncio.create_task(self._drain_stderr())
        try:
            while True:
                chunk = await process.stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                text = strip_control_sequences(decoder.decode(chunk))
                for line in lines.feed(text):
                    await self._emit_line(line)
            for line in lines.feed(strip_control_sequences(decoder.decode(b"", final=True))):
                await self._emit_line(line)
            tail = lines.flush()
            if tail is not None:
                await self._emit_line(tail)
        except OSError as exc:
            logger.error("Reading CLI output failed: %s", exc)
            await self._queue.put(SubprocessEvent.failure(ProcessError(f"Reading CLI output failed: {exc}")))
        finally:
            if not stderr_task.done():
                stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stderr_task

        self._exit_code = await process.wait()
        self._cancel_watchdog()
        logger.info("CLI process %s exited with code %s", process.pid, self._exit_code)
        await self._queue.put(SubprocessEvent.close(self._exit_code))
