"""Route the default pactl sink to a Bluetooth device."""
import logging
from typing import List, Optional

from bluedash.config import PACTL_CMD, PACTL_TIMEOUT_SEC
from bluedash.core.process_runner import ProcessError, ProcessRunner

logger = logging.getLogger(__name__)

# PulseAudio names A2DP sinks bluez_sink.<mac>, PipeWire bluez_output.<mac>
_SINK_PREFIXES = ("bluez_sink.", "bluez_output.")


class AudioRoutingError(Exception):
    """No Bluetooth sink for the device yet."""


class AudioRouter:
    def __init__(self, runner: ProcessRunner) -> None:
        self._runner = runner

    async def _pactl(self, args: List[str]) -> str:
        return await self._runner.run(PACTL_CMD, args, timeout=PACTL_TIMEOUT_SEC)

    async def find_sink(self, mac: str) -> Optional[str]:
        raw = await self._pactl(["list", "short", "sinks"])
        suffix = mac.replace(":", "_").lower()
        targets = [f"{prefix}{suffix}" for prefix in _SINK_PREFIXES]
        for line in raw.splitlines():
            lowered = line.strip().lower()
            if any(target in lowered for target in targets):
                parts = line.split()
                return parts[1] if len(parts) > 1 else None
        return None

    async def set_default_sink(self, sink_name: str) -> None:
        """Make sink_name the default and move every playing stream onto it."""
        await self._pactl(["set-default-sink", sink_name])
        inputs_raw = await self._pactl(["list", "short", "sink-inputs"])
        for line in inputs_raw.splitlines():
            parts = line.split()
            if parts:
                await self._pactl(["move-sink-input", parts[0], sink_name])

    async def use_device(self, mac: str) -> None:
        sink_name = await self.find_sink(mac)
        if not sink_name:
            raise AudioRoutingError("Bluetooth sink not available yet")
        logger.info("Routing audio to %s", sink_name)
        await self.set_default_sink(sink_name)

    async def try_use_device(self, mac: str) -> bool:
        """Best-effort variant used after connect."""
        try:
            await self.use_device(mac)
            return True
        except (AudioRoutingError, ProcessError) as e:
            logger.debug("Audio routing for %s skipped: %s", mac, e)
            return False
