"""Track metadata, now-playing snapshot, and artwork cache entries."""
from dataclasses import dataclass
from typing import Optional


@dataclass
class TrackMetadata:
    """Decoded MediaPlayer1.Track property."""
    title: str = ""
    artist: str = ""
    album: str = ""
    duration_sec: int = 0
    img_handle: str = ""
    artwork_url: str = ""
    obex_port: int = 0


@dataclass
class NowPlaying:
    """Snapshot returned by /media/now-playing. Never stored."""
    connected: bool
    title: str = ""
    artist: str = ""
    album: str = ""
    duration_sec: int = 0
    position_sec: int = 0
    is_playing: bool = False
    artwork_url: Optional[str] = None

    def to_dict(self) -> dict:
        if not self.connected:
            return {"connected": False}
        out = {
            "connected": True,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "durationSec": self.duration_sec,
            "positionSec": self.position_sec,
            "isPlaying": self.is_playing,
        }
        if self.artwork_url:
            out["artworkUrl"] = self.artwork_url
        return out


@dataclass
class ArtworkEntry:
    """Binary artwork held in the local cache."""
    data: bytes
    mime: str
    timestamp: float


@dataclass
class WebArtworkEntry:
    """Web search result; an empty url records a search that found nothing."""
    url: str
    timestamp: float
