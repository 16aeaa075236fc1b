"""OBEX (BIP-AVRCP) sessions per connected device, over obexd's D-Bus API."""
import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from dbus_next import BusType, Variant
from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError

from bluedash.config import OBEX_BUS
from bluedash.models.obex import ObexSession

logger = logging.getLogger(__name__)

OBEX_SERVICE = "org.bluez.obex"
OBEX_ROOT = "/org/bluez/obex"
CLIENT_INTERFACE = "org.bluez.obex.Client1"
IMAGE_INTERFACE = "org.bluez.obex.Image1"
TRANSFER_INTERFACE = "org.bluez.obex.Transfer1"
BIP_AVRCP_TARGET = "bip-avrcp"
_TRANSFER_POLL_SEC = 0.1


class DbusObexClient:
    """Thin async wrapper around org.bluez.obex.Client1 / Image1 (dbus-next)."""

    def __init__(self, bus_type: str = OBEX_BUS) -> None:
        self._bus_type = BusType.SESSION if bus_type == "session" else BusType.SYSTEM
        self._bus: Optional[MessageBus] = None
        self._client = None

    async def _get_client(self):
        if self._client is not None:
            return self._client
        if self._bus is None:
            self._bus = await MessageBus(bus_type=self._bus_type).connect()
        intro = await self._bus.introspect(OBEX_SERVICE, OBEX_ROOT)
        proxy = self._bus.get_proxy_object(OBEX_SERVICE, OBEX_ROOT, intro)
        self._client = proxy.get_interface(CLIENT_INTERFACE)
        return self._client

    async def create_session(self, mac: str, port: int) -> Tuple[str, Any]:
        """Create a BIP-AVRCP session; returns (session path, Image1 interface)."""
        client = await self._get_client()
        path = await client.call_create_session(
            mac, {"Target": Variant("s", BIP_AVRCP_TARGET), "PSM": Variant("q", int(port))}
        )
        intro = await self._bus.introspect(OBEX_SERVICE, path)
        proxy = self._bus.get_proxy_object(OBEX_SERVICE, path, intro)
        return path, proxy.get_interface(IMAGE_INTERFACE)

    async def remove_session(self, path: str) -> None:
        client = await self._get_client()
        await client.call_remove_session(path)

    async def get_image(self, image, target_file: str, handle: str) -> None:
        """Image1.Get, then wait for the queued transfer to finish writing target_file."""
        transfer_path, _props = await image.call_get(target_file, handle, {})
        while True:
            try:
                intro = await self._bus.introspect(OBEX_SERVICE, transfer_path)
                transfer = self._bus.get_proxy_object(OBEX_SERVICE, transfer_path, intro)
                status = await transfer.get_interface(TRANSFER_INTERFACE).get_status()
            except DBusError:
                # obexd drops the transfer object once it is done
                return
            if status == "complete":
                return
            if status == "error":
                raise RuntimeError(f"OBEX transfer {transfer_path} failed")
            await asyncio.sleep(_TRANSFER_POLL_SEC)

    def close(self) -> None:
        if self._bus is not None:
            self._bus.disconnect()
            self._bus = None
            self._client = None


class ObexSessionManager:
    """At most one ObexSession per mac; creation is deduplicated per mac."""

    def __init__(self, client: DbusObexClient) -> None:
        self.client = client
        self._sessions: Dict[str, ObexSession] = {}
        self._creations: Dict[str, "asyncio.Future[Optional[ObexSession]]"] = {}

    def get(self, mac: Optional[str]) -> Optional[ObexSession]:
        if not mac:
            return None
        return self._sessions.get(mac)

    @property
    def macs(self):
        return list(self._sessions)

    async def ensure(self, mac: Optional[str], port: int) -> Optional[ObexSession]:
        if not mac or not port:
            await self.remove_session(mac)
            return None
        existing = self._sessions.get(mac)
        if existing is not None and existing.port == port:
            return existing
        pending = self._creations.get(mac)
        if pending is not None:
            return await asyncio.shield(pending)
        creation = asyncio.ensure_future(self._create(mac, port))
        self._creations[mac] = creation
        try:
            return await asyncio.shield(creation)
        finally:
            if self._creations.get(mac) is creation:
                del self._creations[mac]

    async def _create(self, mac: str, port: int) -> Optional[ObexSession]:
        await self.remove_session(mac)
        try:
            path, image = await self.client.create_session(mac, port)
        except Exception as e:
            logger.debug("OBEX session for %s (port %s) failed: %s", mac, port, e)
            return None
        session = ObexSession(mac=mac, path=path, port=port, image=image)
        self._sessions[mac] = session
        logger.info("OBEX session %s for %s on port %s", path, mac, port)
        return session

    async def remove_session(self, mac: Optional[str]) -> None:
        if not mac:
            return
        session = self._sessions.pop(mac, None)
        if session is None:
            return
        logger.info("Removing OBEX session %s for %s", session.path, mac)
        try:
            await self.client.remove_session(session.path)
        except Exception as e:
            logger.debug("RemoveSession %s: %s", session.path, e)

    async def cleanup(self, keep_mac: Optional[str] = None) -> None:
        """Remove every session except keep_mac's (all when keep_mac is None)."""
        stale = [mac for mac in list(self._sessions) if not keep_mac or mac != keep_mac]
        if stale:
            await asyncio.gather(*(self.remove_session(mac) for mac in stale))
