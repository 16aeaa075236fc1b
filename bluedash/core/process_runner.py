"""Async wrappers for host CLIs: one-shot calls, batch scripts, interactive agents.

Every bluetoothctl / busctl / pactl invocation in the service goes through
ProcessRunner so tests can swap in a fake runner.
"""
import asyncio
import codecs
import logging
import re
from typing import Callable, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

# bluetoothctl colours its prompt and wraps it in readline ignore markers
_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]|[\x01\x02]")
_READ_CHUNK = 4096


class ProcessError(Exception):
    """Non-zero exit, timeout, or spawn failure of a host command."""

    def __init__(
        self,
        message: str,
        command: str = "",
        returncode: Optional[int] = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.output = output


def split_lines(text: str) -> List[str]:
    """Split an output chunk into trimmed, non-empty lines without colour codes."""
    cleaned = _ANSI_RE.sub("", text)
    return [line.strip() for line in re.split(r"[\r\n]", cleaned) if line.strip()]


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        pass


class InteractiveProcess:
    """Long-lived CLI session. stdout and stderr feed the same line handlers."""

    def __init__(self, proc: asyncio.subprocess.Process, command: str) -> None:
        self._proc = proc
        self.command = command
        self._line_handlers: List[Callable[[str], None]] = []
        self._exit_handlers: List[Callable[[Optional[int]], None]] = []
        self._readers = [
            asyncio.ensure_future(self._read(proc.stdout)),
            asyncio.ensure_future(self._read(proc.stderr)),
        ]
        self._waiter = asyncio.ensure_future(self._wait())

    @property
    def returncode(self) -> Optional[int]:
        return self._proc.returncode

    def on_line(self, callback: Callable[[str], None]) -> None:
        self._line_handlers.append(callback)

    def on_exit(self, callback: Callable[[Optional[int]], None]) -> None:
        self._exit_handlers.append(callback)

    def send(self, line: str) -> None:
        """Write one line to stdin. Raises ProcessError if the process is gone."""
        stdin = self._proc.stdin
        if self._proc.returncode is not None or stdin is None or stdin.is_closing():
            raise ProcessError(f"{self.command} is not accepting input", command=self.command)
        try:
            stdin.write(f"{line}\n".encode())
        except (BrokenPipeError, ConnectionResetError, RuntimeError) as e:
            raise ProcessError(str(e) or "broken pipe", command=self.command) from e

    def kill(self) -> None:
        _kill(self._proc)

    async def wait(self) -> Optional[int]:
        await self._waiter
        return self._proc.returncode

    def _emit_line(self, line: str) -> None:
        for callback in list(self._line_handlers):
            try:
                callback(line)
            except Exception:
                logger.exception("%s: line handler failed", self.command)

    async def _read(self, stream: Optional[asyncio.StreamReader]) -> None:
        if stream is None:
            return
        # Each stream keeps its own decoder so split UTF-8 sequences survive chunking
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                tail = decoder.decode(b"", final=True)
                for line in split_lines(tail):
                    self._emit_line(line)
                return
            # Prompts such as "Confirm passkey ... (yes/no):" arrive without a newline,
            # so every piece of a chunk is handled, not only completed lines.
            for line in split_lines(decoder.decode(chunk)):
                self._emit_line(line)

    async def _wait(self) -> None:
        code = await self._proc.wait()
        await asyncio.gather(*self._readers, return_exceptions=True)
        logger.debug("%s exited with %s", self.command, code)
        for callback in list(self._exit_handlers):
            try:
                callback(code)
            except Exception:
                logger.exception("%s: exit handler failed", self.command)


class ProcessRunner:
    """Spawns host commands on the running event loop."""

    async def _spawn(self, command: str, args: Sequence[str], **kwargs) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(command, *args, **kwargs)
        except OSError as e:
            raise ProcessError(f"{command}: {e}", command=command) from e

    async def run(self, command: str, args: Sequence[str], timeout: float = 10.0) -> str:
        """Run to completion and return stdout. Raises ProcessError on failure or timeout."""
        proc = await self._spawn(
            command,
            args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            raise ProcessError(
                f"{command} {' '.join(args)} timed out after {timeout:g}s".strip(),
                command=command,
            ) from None
        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            details = f"{err}{out}".strip()
            raise ProcessError(
                details or f"{command} exited {proc.returncode}",
                command=command,
                returncode=proc.returncode,
                output=details,
            )
        return out

    async def run_batch(self, command: str, lines: Iterable[str], timeout: float = 20.0) -> str:
        """Feed lines to an interactive CLI, close stdin and wait for it to exit."""
        proc = await self._spawn(
            command,
            (),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        script = "".join(f"{line}\n" for line in lines).encode()
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(script), timeout=timeout)
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            raise ProcessError(f"{command} timed out", command=command) from None
        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            details = (err or out or f"{command} exited {proc.returncode}").strip()
            raise ProcessError(details, command=command, returncode=proc.returncode, output=details)
        return out

    async def spawn_interactive(self, command: str, args: Sequence[str] = ()) -> InteractiveProcess:
        proc = await self._spawn(
            command,
            args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        return InteractiveProcess(proc, command)

    async def spawn_detached(self, command: str, args: Sequence[str]) -> asyncio.subprocess.Process:
        """Fire-and-forget process with stdio discarded, in its own session."""
        return await self._spawn(
            command,
            args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )
