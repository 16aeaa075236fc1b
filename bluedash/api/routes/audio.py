"""Audio sink routing."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from bluedash.api.params import require_mac
from bluedash.api.state import AppState, get_state
from bluedash.core.audio_router import AudioRoutingError

router = APIRouter()


@router.post("/audio/use")
async def use_audio(mac: Optional[str] = None, state: AppState = Depends(get_state)):
    """Route audio to mac, or to the connected device when mac is omitted."""
    if mac:
        mac = require_mac(mac)
    else:
        device = await state.directory.get_connected_device()
        if device is None:
            raise HTTPException(status_code=400, detail="No connected device")
        mac = device.mac
    try:
        await state.audio.use_device(mac)
    except AudioRoutingError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"ok": True}
