"""Data models for devices, pairing, OBEX sessions, and now-playing media."""
from bluedash.models.device import DeviceRecord
from bluedash.models.media import ArtworkEntry, NowPlaying, TrackMetadata, WebArtworkEntry
from bluedash.models.obex import ObexSession
from bluedash.models.pairing import PairingSession, PairState

__all__ = [
    "ArtworkEntry",
    "DeviceRecord",
    "NowPlaying",
    "ObexSession",
    "PairState",
    "PairingSession",
    "TrackMetadata",
    "WebArtworkEntry",
]
