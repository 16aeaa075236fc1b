"""Bluetooth device records from bluetoothctl."""
from dataclasses import asdict, dataclass
from typing import Optional


@dataclass
class DeviceRecord:
    """One remembered device; built fresh on every directory query."""
    mac: str
    name: str
    alias: str
    connected: bool
    paired: bool
    trusted: bool
    blocked: bool
    rssi: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)
