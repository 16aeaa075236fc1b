"""Known/paired device listing and lifecycle calls via bluetoothctl."""
import logging
import re
from typing import List, Optional

from bluedash.config import (
    BATCH_TIMEOUT_SEC,
    BLUETOOTHCTL_CMD,
    BTCTL_TIMEOUT_SEC,
    CONNECT_TIMEOUT_SEC,
    TRUST_TIMEOUT_SEC,
)
from bluedash.core.process_runner import ProcessError, ProcessRunner
from bluedash.models.device import DeviceRecord

logger = logging.getLogger(__name__)

# "Device AA:BB:CC:DD:EE:FF Name"
_DEVICE_LINE_RE = re.compile(r"^Device\s+([0-9A-F:]{17})\s+(.+)$", re.IGNORECASE)
_MAC_RE = re.compile(r"^[0-9A-F]{2}(?::[0-9A-F]{2}){5}$", re.IGNORECASE)
# "RSSI: -60" or "RSSI: 0xffffffc4 (-60)"
_RSSI_RE = re.compile(r"\((-?\d+)\)|^(-?\d+)$")


def normalize_mac(value: Optional[str]) -> Optional[str]:
    """Return the canonical upper-case colon-hex form, or None if not a MAC."""
    mac = (value or "").strip()
    if not _MAC_RE.match(mac):
        return None
    return mac.upper()


def parse_devices(output: str) -> List[dict]:
    """Parse `bluetoothctl devices` style output into [{mac, name}]."""
    out = []
    for raw in output.splitlines():
        match = _DEVICE_LINE_RE.match(raw.strip())
        if match:
            out.append({"mac": match.group(1).upper(), "name": match.group(2).strip()})
    return out


def _parse_rssi(value: str) -> Optional[int]:
    match = _RSSI_RE.search(value.strip())
    if not match:
        return None
    return int(match.group(1) or match.group(2))


def parse_info(mac: str, output: str) -> DeviceRecord:
    """Parse `bluetoothctl info <mac>` into a DeviceRecord."""
    fields = {}
    for raw in output.splitlines():
        line = raw.strip()
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        # First occurrence wins; UUID lines repeat
        fields.setdefault(key.strip(), value.strip())

    def flag(key: str) -> bool:
        return fields.get(key, "") == "yes"

    rssi = fields.get("RSSI", "")
    return DeviceRecord(
        mac=mac,
        name=fields.get("Name", ""),
        alias=fields.get("Alias", ""),
        connected=flag("Connected"),
        paired=flag("Paired"),
        trusted=flag("Trusted"),
        blocked=flag("Blocked"),
        rssi=_parse_rssi(rssi) if rssi else None,
    )


class DeviceDirectory:
    """Builds device records from bluetoothctl and runs lifecycle commands."""

    def __init__(self, runner: ProcessRunner) -> None:
        self._runner = runner

    async def _btctl(self, args: List[str], timeout: float = BTCTL_TIMEOUT_SEC) -> str:
        return await self._runner.run(BLUETOOTHCTL_CMD, args, timeout=timeout)

    async def list_devices(self) -> List[DeviceRecord]:
        """Known devices in listing order; paired is the union of info and paired-devices."""
        known = parse_devices(await self._btctl(["devices"]))
        try:
            paired_raw = await self._btctl(["paired-devices"])
        except ProcessError as e:
            logger.debug("paired-devices unavailable: %s", e)
            paired_raw = ""
        paired = {d["mac"] for d in parse_devices(paired_raw)}

        records = []
        for device in known:
            mac = device["mac"]
            try:
                info = parse_info(mac, await self._btctl(["info", mac]))
            except ProcessError as e:
                logger.debug("info %s failed: %s", mac, e)
                records.append(
                    DeviceRecord(
                        mac=mac,
                        name=device["name"],
                        alias=device["name"],
                        connected=False,
                        paired=mac in paired,
                        trusted=False,
                        blocked=False,
                        rssi=None,
                    )
                )
                continue
            info.name = info.name or device["name"]
            info.paired = info.paired or mac in paired
            records.append(info)
        return records

    async def get_connected_device(self) -> Optional[DeviceRecord]:
        for device in await self.list_devices():
            if device.connected:
                return device
        return None

    async def connect(self, mac: str) -> None:
        logger.info("Connecting %s", mac)
        await self._runner.run_batch(
            BLUETOOTHCTL_CMD,
            ["agent on", "default-agent", f"connect {mac}"],
            timeout=BATCH_TIMEOUT_SEC,
        )

    async def connect_direct(self, mac: str) -> None:
        await self._btctl(["connect", mac], timeout=CONNECT_TIMEOUT_SEC)

    async def trust(self, mac: str) -> None:
        await self._btctl(["trust", mac], timeout=TRUST_TIMEOUT_SEC)

    async def disconnect(self, mac: str) -> None:
        logger.info("Disconnecting %s", mac)
        await self._btctl(["disconnect", mac])

    async def remove(self, mac: str) -> None:
        logger.info("Removing %s", mac)
        await self._btctl(["remove", mac])

    async def scan_off(self) -> None:
        await self._btctl(["scan", "off"])
