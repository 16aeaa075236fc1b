"""Pairing session state."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class PairState(str, Enum):
    PAIRING = "pairing"
    CONFIRM = "confirm"
    PAIRED = "paired"
    FAILED = "failed"


@dataclass
class PairingSession:
    """One pairing attempt, owning one interactive bluetoothctl agent."""
    id: str
    mac: str
    state: PairState = PairState.PAIRING
    passkey: Optional[str] = None
    error: Optional[str] = None
    process: Any = field(default=None, repr=False)
    finalized: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "mac": self.mac,
            "state": self.state.value,
            "passkey": self.passkey,
            "error": self.error,
        }
