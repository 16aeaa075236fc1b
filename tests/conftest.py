"""Fakes for host tools (bluetoothctl, busctl, pactl) and obexd."""
import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest

from bluedash.config import BLUETOOTHCTL_CMD, BUSCTL_CMD, PACTL_CMD
from bluedash.core.process_runner import ProcessError

Response = Union[str, Exception]


class FakeInteractive:
    """Stands in for InteractiveProcess; tests push lines and exits."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.killed = False
        self.fail_writes = False
        self.returncode: Optional[int] = None
        self._line_handlers = []
        self._exit_handlers = []

    def on_line(self, callback) -> None:
        self._line_handlers.append(callback)

    def on_exit(self, callback) -> None:
        self._exit_handlers.append(callback)

    def send(self, line: str) -> None:
        if self.fail_writes or self.returncode is not None:
            raise ProcessError("bluetoothctl is not accepting input")
        self.sent.append(line)

    def emit(self, *lines: str) -> None:
        for line in lines:
            for callback in self._line_handlers:
                callback(line)

    def exit(self, code: int = 0) -> None:
        self.returncode = code
        for callback in self._exit_handlers:
            callback(code)

    def kill(self) -> None:
        self.killed = True


class FakeDetached:
    def __init__(self) -> None:
        self._done = asyncio.Event()

    async def wait(self) -> int:
        await self._done.wait()
        return 0

    def finish(self) -> None:
        self._done.set()


class FakeRunner:
    """Answers run() from a (command, args) table; unknown calls fail like a missing object."""

    def __init__(self, responses: Optional[Dict[Tuple[str, ...], Response]] = None) -> None:
        self.responses: Dict[Tuple[str, ...], Response] = dict(responses or {})
        self.calls: List[Tuple[str, ...]] = []
        self.batches: List[List[str]] = []
        self.detached: List[Tuple[str, ...]] = []
        self.interactive: List[FakeInteractive] = []

    async def run(self, command: str, args, timeout: float = 10.0) -> str:
        key = (command, *args)
        self.calls.append(key)
        result = self.responses.get(key)
        if result is None:
            raise ProcessError(f"unexpected call: {' '.join(key)}", command=command, returncode=1)
        if isinstance(result, Exception):
            raise result
        return result

    async def run_batch(self, command: str, lines, timeout: float = 20.0) -> str:
        self.batches.append(list(lines))
        return ""

    async def spawn_interactive(self, command: str, args=()) -> FakeInteractive:
        process = FakeInteractive()
        self.interactive.append(process)
        return process

    async def spawn_detached(self, command: str, args) -> FakeDetached:
        self.detached.append((command, *args))
        return FakeDetached()


class FakeObexClient:
    """In-memory obexd: counts sessions and writes image payloads to the target file."""

    def __init__(self, image_bytes: bytes = b"\xff\xd8\xff\xe0fakejpeg") -> None:
        self.image_bytes = image_bytes
        self.created: List[Tuple[str, int]] = []
        self.removed: List[str] = []
        self.downloads: List[Tuple[str, str]] = []
        self.fail_create = False
        self.fail_get = False
        self.get_delay = 0.0
        self.closed = False

    async def create_session(self, mac: str, port: int):
        self.created.append((mac, port))
        await asyncio.sleep(0)
        if self.fail_create:
            raise RuntimeError("obexd unavailable")
        return f"/org/bluez/obex/client/session{len(self.created)}", object()

    async def remove_session(self, path: str) -> None:
        self.removed.append(path)

    async def get_image(self, image, target_file: str, handle: str) -> None:
        self.downloads.append((target_file, handle))
        if self.get_delay:
            await asyncio.sleep(self.get_delay)
        if self.fail_get:
            raise RuntimeError("transfer failed")
        Path(target_file).write_bytes(self.image_bytes)

    def close(self) -> None:
        self.closed = True


def btctl(*args: str) -> Tuple[str, ...]:
    return (BLUETOOTHCTL_CMD, *args)


def busctl(*args: str) -> Tuple[str, ...]:
    return (BUSCTL_CMD, "--system", *args)


def pactl(*args: str) -> Tuple[str, ...]:
    return (PACTL_CMD, *args)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def obex_client() -> FakeObexClient:
    return FakeObexClient()
