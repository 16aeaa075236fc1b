"""Now-playing snapshot and artwork cache endpoints."""
import base64
import binascii
import hashlib
import re
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from bluedash.api.state import AppState, get_state
from bluedash.core.artwork import detect_image_mime
from bluedash.core.device_directory import normalize_mac

router = APIRouter()

_DATA_URL_RE = re.compile(r"^data:([^;,]*)(;base64)?,(.*)$", re.DOTALL)


class ArtworkUploadBody(BaseModel):
    """Externally supplied artwork. data is base64 or a data: URL."""
    data: str
    mime: Optional[str] = None
    key: Optional[str] = None
    mac: Optional[str] = None
    handle: Optional[str] = None


def _decode_upload(data: str) -> Tuple[bytes, Optional[str]]:
    """Return (bytes, mime from data URL if any). Raises ValueError."""
    text = data.strip()
    mime = None
    match = _DATA_URL_RE.match(text)
    if match:
        mime = match.group(1) or None
        if not match.group(2):
            raise ValueError("Only base64 data URLs are supported")
        text = match.group(3)
    try:
        return base64.b64decode(text, validate=True), mime
    except binascii.Error as e:
        raise ValueError(f"Invalid base64: {e}") from e


def _upload_key(body: ArtworkUploadBody, payload: bytes) -> str:
    if body.key:
        return body.key
    if body.mac and body.handle:
        return f"{normalize_mac(body.mac) or body.mac}:{body.handle}"
    return f"upload:{hashlib.sha1(payload).hexdigest()[:16]}"


@router.get("/media/now-playing")
async def now_playing(state: AppState = Depends(get_state)):
    """Polled by the UI; always answers with a best-effort snapshot."""
    snapshot = await state.now_playing.get()
    return snapshot.to_dict()


@router.get("/media/artwork/{key:path}")
def get_artwork(key: str, state: AppState = Depends(get_state)):
    entry = state.artwork_cache.get_local(key)
    if entry is None:
        raise HTTPException(status_code=404, detail="Artwork not found")
    return Response(
        content=entry.data,
        media_type=entry.mime,
        headers={"Cache-Control": "public, max-age=3600"},
    )


@router.post("/media/artwork/upload")
def upload_artwork(body: ArtworkUploadBody, state: AppState = Depends(get_state)):
    try:
        payload, data_url_mime = _decode_upload(body.data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not payload:
        raise HTTPException(status_code=400, detail="Empty artwork")
    mime = body.mime or data_url_mime or detect_image_mime(payload)
    url = state.artwork_cache.put_local(_upload_key(body, payload), payload, mime)
    if url is None:
        raise HTTPException(status_code=413, detail="Artwork too large")
    return {"ok": True, "artworkUrl": url}
