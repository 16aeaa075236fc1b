"""Device listing, discovery window, and connect/disconnect/remove."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from bluedash.api.params import require_mac
from bluedash.api.state import AppState, get_state
from bluedash.core.process_runner import ProcessError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/devices")
async def list_devices(state: AppState = Depends(get_state)):
    """Return remembered devices with connection/pairing flags; empty when bluetoothctl fails."""
    try:
        devices = await state.directory.list_devices()
    except ProcessError as e:
        logger.warning("Device listing failed: %s", e)
        return {"devices": []}
    return {"devices": [d.to_dict() for d in devices]}


@router.post("/scan/start")
async def scan_start(state: AppState = Depends(get_state)):
    """Open a discovery window; no-op while one is open."""
    await state.scan.start()
    return {"ok": True}


@router.post("/scan/stop")
async def scan_stop(state: AppState = Depends(get_state)):
    await state.scan.stop()
    return {"ok": True}


@router.post("/connect")
async def connect(mac: Optional[str] = None, state: AppState = Depends(get_state)):
    """Connect, then try to route audio to the device's sink."""
    mac = require_mac(mac)
    await state.directory.connect(mac)
    await state.audio.try_use_device(mac)
    return {"ok": True}


@router.post("/disconnect")
async def disconnect(mac: Optional[str] = None, state: AppState = Depends(get_state)):
    mac = require_mac(mac)
    await state.directory.disconnect(mac)
    await state.obex.remove_session(mac)
    return {"ok": True}


@router.post("/remove")
async def remove(mac: Optional[str] = None, state: AppState = Depends(get_state)):
    mac = require_mac(mac)
    await state.directory.remove(mac)
    await state.obex.remove_session(mac)
    return {"ok": True}
