"""Core services: process runner, devices, pairing, scan, now-playing, artwork."""
from bluedash.core.device_directory import DeviceDirectory
from bluedash.core.now_playing import NowPlayingAggregator
from bluedash.core.pairing import PairingOrchestrator
from bluedash.core.process_runner import ProcessError, ProcessRunner

__all__ = [
    "DeviceDirectory",
    "NowPlayingAggregator",
    "PairingOrchestrator",
    "ProcessError",
    "ProcessRunner",
]
