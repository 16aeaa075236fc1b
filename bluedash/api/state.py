"""Shared application state (injected into routes)."""
from typing import Optional

from bluedash.core.artwork import ArtworkCache, CoverArtFetcher, WebArtworkSearch
from bluedash.core.audio_router import AudioRouter
from bluedash.core.device_directory import DeviceDirectory
from bluedash.core.now_playing import NowPlayingAggregator
from bluedash.core.obex import DbusObexClient, ObexSessionManager
from bluedash.core.pairing import PairingOrchestrator
from bluedash.core.process_runner import ProcessRunner
from bluedash.core.scan import ScanController


class AppState:
    """Every service instance and shared map lives here, not in module globals."""

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        obex_client: Optional[DbusObexClient] = None,
        artwork_cache: Optional[ArtworkCache] = None,
        web_search: Optional[WebArtworkSearch] = None,
    ) -> None:
        self.runner = runner or ProcessRunner()
        self.directory = DeviceDirectory(self.runner)
        self.pairing = PairingOrchestrator(self.runner, self.directory)
        self.scan = ScanController(self.runner, self.directory)
        self.audio = AudioRouter(self.runner)
        self.artwork_cache = artwork_cache or ArtworkCache()
        self.obex = ObexSessionManager(obex_client or DbusObexClient())
        self.cover_art = CoverArtFetcher(self.artwork_cache, self.obex.client)
        self.web_search = web_search or WebArtworkSearch(self.artwork_cache)
        self.now_playing = NowPlayingAggregator(
            self.runner,
            self.directory,
            self.obex,
            self.cover_art,
            self.artwork_cache,
            self.web_search,
        )

    async def shutdown(self) -> None:
        self.pairing.shutdown()
        self.scan.shutdown()
        await self.obex.cleanup(None)
        self.obex.client.close()
        await self.web_search.close()


_state = AppState()


def get_state() -> AppState:
    return _state
