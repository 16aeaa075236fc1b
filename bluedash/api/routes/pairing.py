"""Pairing: start, poll status, confirm passkey."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from bluedash.api.params import require_mac, require_param
from bluedash.api.state import AppState, get_state

router = APIRouter()


@router.post("/pair")
async def pair(mac: Optional[str] = None, state: AppState = Depends(get_state)):
    """Spawn a pairing agent; poll /pair/status with the returned sessionId."""
    mac = require_mac(mac)
    session = await state.pairing.start(mac)
    return {
        "ok": True,
        "sessionId": session.id,
        "state": session.state.value,
        "passkey": session.passkey,
    }


@router.get("/pair/status")
async def pair_status(id: Optional[str] = None, state: AppState = Depends(get_state)):
    session = await state.pairing.status(require_param(id, "id"))
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.to_dict()


@router.post("/pair/confirm")
async def pair_confirm(
    id: Optional[str] = None,
    accept: Optional[str] = None,
    state: AppState = Depends(get_state),
):
    """Answer the agent's passkey prompt (accept=yes|no)."""
    session_id = require_param(id, "id")
    session = state.pairing.confirm(session_id, (accept or "").lower() == "yes")
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.to_dict()
