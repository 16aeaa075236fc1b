"""Time-boxed discovery window."""
import asyncio
import logging
from typing import Optional, Set

from bluedash.config import BLUETOOTHCTL_CMD, SCAN_TIMEOUT_SEC
from bluedash.core.device_directory import DeviceDirectory
from bluedash.core.process_runner import ProcessError, ProcessRunner

logger = logging.getLogger(__name__)


class ScanController:
    """Starts a detached `bluetoothctl scan on` and stops it after the window."""

    def __init__(
        self,
        runner: ProcessRunner,
        directory: DeviceDirectory,
        timeout_sec: int = SCAN_TIMEOUT_SEC,
    ) -> None:
        self._runner = runner
        self._directory = directory
        self._timeout_sec = timeout_sec
        self._timer: Optional[asyncio.TimerHandle] = None
        self._process = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self._timer is not None

    async def start(self) -> None:
        if self._timer is not None:
            return
        if self._process is None:
            self._process = await self._runner.spawn_detached(
                BLUETOOTHCTL_CMD, ["--timeout", str(self._timeout_sec), "scan", "on"]
            )
            self._spawn_task(self._reap(self._process))
        loop = asyncio.get_running_loop()
        # The scan process may not stop on its own, so the window is also closed explicitly
        self._timer = loop.call_later(self._timeout_sec, self._on_timer)
        logger.info("Scan started (%ss window)", self._timeout_sec)

    async def _reap(self, process) -> None:
        await process.wait()
        if self._process is process:
            self._process = None

    def _on_timer(self) -> None:
        self._timer = None
        self._spawn_task(self._scan_off_quietly())

    def _spawn_task(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Scan task failed: %s", task.exception())

    async def _scan_off_quietly(self) -> None:
        try:
            await self._directory.scan_off()
        except ProcessError as e:
            logger.debug("scan off after window failed: %s", e)
        logger.info("Scan window closed")

    async def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._process = None
        logger.info("Scan stopped")
        await self._directory.scan_off()

    def shutdown(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._tasks):
            task.cancel()
