"""Artwork caches, OBEX cover-art download, and the web search fallback."""
import asyncio
import logging
import re
import secrets
import tempfile
import time
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import quote

import httpx

from bluedash.config import (
    ARTWORK_MAX_BYTES,
    ARTWORK_SEARCH_URL,
    COVER_ART_TIMEOUT_SEC,
    WEB_ARTWORK_ENABLED,
    WEB_ARTWORK_TIMEOUT_SEC,
    WEB_ARTWORK_TTL_SEC,
)
from bluedash.core.obex import DbusObexClient
from bluedash.models.media import ArtworkEntry, WebArtworkEntry
from bluedash.models.obex import ObexSession

logger = logging.getLogger(__name__)

ARTWORK_ROUTE = "/media/artwork"
DEFAULT_MIME = "application/octet-stream"
_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def detect_image_mime(data: bytes) -> str:
    """MIME type from magic bytes: JPEG, PNG, GIF, BMP; anything else is binary."""
    if not data:
        return DEFAULT_MIME
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:8] == _PNG_SIGNATURE:
        return "image/png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:2] == b"BM":
        return "image/bmp"
    return DEFAULT_MIME


def artwork_url(key: str) -> str:
    return f"{ARTWORK_ROUTE}/{quote(key, safe='')}"


class ArtworkCache:
    """Local binary cache (size ceiling, no expiry) and web URL cache (TTL)."""

    def __init__(
        self,
        max_bytes: int = ARTWORK_MAX_BYTES,
        web_ttl_sec: float = WEB_ARTWORK_TTL_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_bytes = max_bytes
        self.web_ttl_sec = web_ttl_sec
        self._clock = clock
        self._local: Dict[str, ArtworkEntry] = {}
        self._web: Dict[str, WebArtworkEntry] = {}

    def put_local(self, key: str, data: bytes, mime: str) -> Optional[str]:
        """Store and return the retrieval URL; oversize payloads are never admitted."""
        if len(data) > self.max_bytes:
            logger.debug("Artwork %s rejected: %d bytes > %d", key, len(data), self.max_bytes)
            return None
        self._local[key] = ArtworkEntry(data=data, mime=mime, timestamp=self._clock())
        return artwork_url(key)

    def get_local(self, key: str) -> Optional[ArtworkEntry]:
        return self._local.get(key)

    def get_web(self, key: str) -> Optional[str]:
        """Cached URL, "" for a cached miss, None when unknown or expired."""
        entry = self._web.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > self.web_ttl_sec:
            del self._web[key]
            return None
        return entry.url

    def put_web(self, key: str, url: str) -> None:
        self._web[key] = WebArtworkEntry(url=url, timestamp=self._clock())

    @staticmethod
    def web_key(title: str, artist: str = "", album: str = "") -> str:
        joined = " ".join(part for part in (title, artist, album) if part)
        return re.sub(r"\s+", " ", joined).strip().lower()


class CoverArtFetcher:
    """Downloads BIP cover art through an ObexSession into the local cache."""

    def __init__(
        self,
        cache: ArtworkCache,
        client: DbusObexClient,
        timeout_sec: float = COVER_ART_TIMEOUT_SEC,
    ) -> None:
        self._cache = cache
        self._client = client
        self._timeout_sec = timeout_sec

    async def fetch(self, session: Optional[ObexSession], handle: str) -> Optional[str]:
        if session is None or not handle:
            return None
        if session.last_handle == handle and session.artwork_url:
            return session.artwork_url
        if session.download is not None and not session.download.done():
            return await asyncio.shield(session.download)
        download = asyncio.ensure_future(self._download(session, handle))
        session.download = download
        try:
            return await asyncio.shield(download)
        finally:
            if session.download is download:
                session.download = None

    async def _download(self, session: ObexSession, handle: str) -> Optional[str]:
        target = Path(tempfile.gettempdir()) / (
            f"bluedash-cover-{int(time.time() * 1000)}-{secrets.token_hex(6)}.img"
        )
        try:
            await asyncio.wait_for(
                self._client.get_image(session.image, str(target), handle),
                timeout=self._timeout_sec,
            )
            data = await asyncio.to_thread(target.read_bytes)
            if not data:
                return None
            url = self._cache.put_local(f"{session.mac}:{handle}", data, detect_image_mime(data))
            if url:
                session.last_handle = handle
                session.artwork_url = url
            return url
        except Exception as e:
            logger.debug("Cover art %s for %s failed: %s", handle, session.mac, e)
            return None
        finally:
            try:
                target.unlink()
            except OSError:
                pass


class WebArtworkSearch:
    """Album art from the iTunes Search API, cached by normalized query."""

    def __init__(
        self,
        cache: ArtworkCache,
        enabled: bool = WEB_ARTWORK_ENABLED,
        search_url: str = ARTWORK_SEARCH_URL,
        timeout_sec: float = WEB_ARTWORK_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._cache = cache
        self._enabled = enabled
        self._search_url = search_url
        self._timeout_sec = timeout_sec
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_sec, transport=self._transport)
        return self._client

    async def search(self, title: str, artist: str = "", album: str = "") -> Optional[str]:
        if not self._enabled or not title:
            return None
        key = self._cache.web_key(title, artist, album)
        cached = self._cache.get_web(key)
        if cached is not None:
            return cached or None
        params = {"term": key, "media": "music", "entity": "song", "limit": 1}
        try:
            resp = await self._http().get(self._search_url, params=params)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Artwork search %r failed: %s", key, e)
            return None
        if not isinstance(payload, dict) or not isinstance(payload.get("results", []), list):
            logger.debug("Artwork search %r: unexpected response", key)
            return None
        results = payload.get("results") or []
        url = ""
        if results and isinstance(results[0], dict):
            art = results[0].get("artworkUrl100") or results[0].get("artworkUrl60") or ""
            if not isinstance(art, str):
                art = ""
            # iTunes serves any square size from the same path
            url = re.sub(r"/\d+x\d+bb\.", "/600x600bb.", art)
        self._cache.put_web(key, url)
        return url or None

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
