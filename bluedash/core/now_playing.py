"""Now-playing snapshot: connected device + AVRCP player + cover art."""
import logging
import re
from typing import List, Optional

from bluedash.config import BLUEZ_ADAPTER, BUSCTL_CMD, BUSCTL_TIMEOUT_SEC
from bluedash.core.artwork import ArtworkCache, CoverArtFetcher, WebArtworkSearch, artwork_url
from bluedash.core.busctl_decoder import decode_track, parse_scalar
from bluedash.core.device_directory import DeviceDirectory
from bluedash.core.obex import ObexSessionManager
from bluedash.core.process_runner import ProcessError, ProcessRunner
from bluedash.models.device import DeviceRecord
from bluedash.models.media import NowPlaying, TrackMetadata
from bluedash.models.obex import ObexSession

logger = logging.getLogger(__name__)

BLUEZ_SERVICE = "org.bluez"
MEDIA_PLAYER_INTERFACE = "org.bluez.MediaPlayer1"
FALLBACK_ARTIST = "Bluetooth Audio"
_INT_RE = re.compile(r"\b(\d+)\b")


def _fallback_title(device: DeviceRecord) -> str:
    return device.name or device.alias or "Bluetooth"


def _parse_int(raw: str) -> int:
    match = _INT_RE.search(raw or "")
    return int(match.group(1)) if match else 0


class NowPlayingAggregator:
    """Composes directory, busctl, OBEX, and artwork caches into one snapshot."""

    def __init__(
        self,
        runner: ProcessRunner,
        directory: DeviceDirectory,
        obex: ObexSessionManager,
        cover_art: CoverArtFetcher,
        cache: ArtworkCache,
        web_search: WebArtworkSearch,
        adapter: str = BLUEZ_ADAPTER,
    ) -> None:
        self._runner = runner
        self._directory = directory
        self._obex = obex
        self._cover_art = cover_art
        self._cache = cache
        self._web_search = web_search
        self._adapter = adapter

    async def _busctl(self, args: List[str]) -> str:
        return await self._runner.run(BUSCTL_CMD, ["--system", *args], timeout=BUSCTL_TIMEOUT_SEC)

    def device_path(self, mac: str) -> str:
        return f"/org/bluez/{self._adapter}/dev_{mac.replace(':', '_')}"

    async def find_player_path(self, mac: str) -> Optional[str]:
        """player0 under the device if it introspects, else any player* in the object tree."""
        device_path = self.device_path(mac)
        candidate = f"{device_path}/player0"
        try:
            await self._busctl(["introspect", BLUEZ_SERVICE, candidate])
            return candidate
        except ProcessError:
            pass
        try:
            tree = await self._busctl(["tree", "--list", BLUEZ_SERVICE])
        except ProcessError as e:
            logger.debug("busctl tree failed: %s", e)
            return None
        prefix = f"{device_path}/"
        for line in tree.splitlines():
            path = line.strip()
            if path.startswith(prefix) and path.rsplit("/", 1)[-1].startswith("player"):
                return path
        return None

    async def _player_property(self, player_path: str, prop: str) -> str:
        raw = await self._busctl(
            ["get-property", BLUEZ_SERVICE, player_path, MEDIA_PLAYER_INTERFACE, prop]
        )
        return raw.strip()

    async def _optional_player_property(self, player_path: str, prop: str) -> str:
        try:
            return await self._player_property(player_path, prop)
        except ProcessError:
            return ""

    def _minimal(self, device: DeviceRecord, artwork: Optional[str] = None) -> NowPlaying:
        return NowPlaying(
            connected=True,
            title=_fallback_title(device),
            artist=FALLBACK_ARTIST,
            album="",
            duration_sec=0,
            position_sec=0,
            is_playing=True,
            artwork_url=artwork,
        )

    async def get(self) -> NowPlaying:
        try:
            device = await self._directory.get_connected_device()
        except ProcessError as e:
            # bluetoothd restarting; keep OBEX sessions for the next poll
            logger.warning("Now playing: device lookup failed: %s", e)
            return NowPlaying(connected=False)
        if device is None:
            await self._obex.cleanup(None)
            return NowPlaying(connected=False)

        await self._obex.cleanup(device.mac)
        try:
            return await self._snapshot(device)
        except Exception as e:
            logger.warning("Now playing for %s degraded: %s", device.mac, e)
            session = self._obex.get(device.mac)
            return self._minimal(device, session.artwork_url if session else None)

    async def _snapshot(self, device: DeviceRecord) -> NowPlaying:
        player_path = await self.find_player_path(device.mac)
        if player_path is None:
            await self._obex.remove_session(device.mac)
            return self._minimal(device)

        track = decode_track(await self._player_property(player_path, "Track"))
        status = await self._player_property(player_path, "Status")
        position_ms = _parse_int(parse_scalar(await self._optional_player_property(player_path, "Position")))

        port = track.obex_port or _parse_int(await self._optional_player_property(player_path, "ObexPort"))
        # ensure() drops the device's session when there is no port
        session = await self._obex.ensure(device.mac, port)

        return NowPlaying(
            connected=True,
            title=track.title or _fallback_title(device),
            artist=track.artist or FALLBACK_ARTIST,
            album=track.album,
            duration_sec=track.duration_sec,
            position_sec=position_ms // 1000,
            is_playing="playing" in status.lower(),
            artwork_url=await self._resolve_artwork(device.mac, track, session),
        )

    async def _resolve_artwork(
        self, mac: str, track: TrackMetadata, session: Optional[ObexSession]
    ) -> Optional[str]:
        """Embedded URL, session memo, OBEX fetch, local cache, then web search."""
        if track.artwork_url:
            return track.artwork_url
        handle = track.img_handle
        if session is not None and session.artwork_url and (not handle or handle == session.last_handle):
            return session.artwork_url
        if handle:
            fetched = await self._cover_art.fetch(session, handle)
            if fetched:
                return fetched
            key = f"{mac}:{handle}"
            if self._cache.get_local(key) is not None:
                return artwork_url(key)
        return await self._web_search.search(track.title, track.artist, track.album)
