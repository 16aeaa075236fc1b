"""OBEX (BIP-AVRCP) session tracked per connected device."""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ObexSession:
    """Live obexd session; valid only while port matches the player's ObexPort."""
    mac: str
    path: str
    port: int
    image: Any = field(default=None, repr=False)  # org.bluez.obex.Image1 interface
    last_handle: str = ""
    artwork_url: Optional[str] = None
    download: Optional["asyncio.Task"] = field(default=None, repr=False)
