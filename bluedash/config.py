"""Configuration: env, host tool locations, timeouts, artwork cache limits."""
import os
from pathlib import Path

from dotenv import load_dotenv

# Base paths (project root = parent of bluedash package)
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from project root so BLUETOOTHCTL_CMD etc. are set
load_dotenv(BASE_DIR / ".env")

# API
API_HOST = os.getenv("BLUEDASH_API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("BLUEDASH_API_PORT", os.getenv("BLUETOOTH_WS_PORT", "5175")))

# Host tools
BLUETOOTHCTL_CMD = os.getenv("BLUETOOTHCTL_CMD", "bluetoothctl")
PACTL_CMD = os.getenv("PACTL_CMD", "pactl")
BUSCTL_CMD = os.getenv("BUSCTL_CMD", "busctl")

# BlueZ
BLUEZ_ADAPTER = os.getenv("BLUEDASH_BLUEZ_ADAPTER", "hci0")
# obexd defaults to the session bus; the dash image runs it on the system bus
OBEX_BUS = os.getenv("BLUEDASH_OBEX_BUS", "system").lower()

# Timeouts (seconds)
BTCTL_TIMEOUT_SEC = 10.0
BUSCTL_TIMEOUT_SEC = 8.0
PACTL_TIMEOUT_SEC = 8.0
BATCH_TIMEOUT_SEC = 20.0
TRUST_TIMEOUT_SEC = 8.0
CONNECT_TIMEOUT_SEC = 10.0
SCAN_TIMEOUT_SEC = int(os.getenv("BLUEDASH_SCAN_TIMEOUT_SEC", "20"))
COVER_ART_TIMEOUT_SEC = float(os.getenv("BLUEDASH_COVER_ART_TIMEOUT_SEC", "5"))
WEB_ARTWORK_TIMEOUT_SEC = 4.0

# Artwork caches
ARTWORK_MAX_BYTES = int(os.getenv("BLUEDASH_ARTWORK_MAX_BYTES", str(5 * 1024 * 1024)))
WEB_ARTWORK_TTL_SEC = float(os.getenv("BLUEDASH_WEB_ARTWORK_TTL_SEC", str(6 * 60 * 60)))
WEB_ARTWORK_ENABLED = os.getenv("BLUEDASH_WEB_ARTWORK", "1").lower() in ("1", "true", "yes")
ARTWORK_SEARCH_URL = os.getenv("BLUEDASH_ARTWORK_SEARCH_URL", "https://itunes.apple.com/search")
