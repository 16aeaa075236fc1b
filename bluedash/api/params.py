"""Query parameter checks shared by routes."""
from typing import Optional

from fastapi import HTTPException

from bluedash.core.device_directory import normalize_mac


def require_mac(mac: Optional[str]) -> str:
    if not mac:
        raise HTTPException(status_code=400, detail="Missing mac")
    canonical = normalize_mac(mac)
    if canonical is None:
        raise HTTPException(status_code=400, detail="Invalid mac")
    return canonical


def require_param(value: Optional[str], name: str) -> str:
    if not value:
        raise HTTPException(status_code=400, detail=f"Missing {name}")
    return value
