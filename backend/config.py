"""Application-wide configuration constants."""

import os
from pathlib import Path

# --- Identity ---
APP_NAME = "AutoJs6 Bridge"

# --- Networking ---
API_HOST = "127.0.0.1"
API_PORT = 8765
HTTP_SERVER_HOST = "0.0.0.0"
HTTP_SERVER_PORT = 10347  # inbound /exec calls from devices

DEFAULT_CLIENT_PORT = 6347  # device-side server mode
DEFAULT_ADB_SERVER_PORT = 7347  # device-side adb bridge server

IP_LOOPBACK = "127.0.0.1"
IP_WILDCARD = "0.0.0.0"
ADDRESS_BLACKLIST = (IP_LOOPBACK, IP_WILDCARD)

# --- Timing (seconds) ---
PORT_LEASE_INTERVAL = 15
PORT_PROBE_ATTEMPTS = 32
ADB_HANDSHAKE_TIMEOUT = 5
ADB_COMMAND_TIMEOUT = 10
CONNECT_TIMEOUT = 10
RERUN_DELAY = 1

# --- ADB ---
ADB_PATH = os.environ.get("ADB_PATH", "")
DEBUG_SERVER_URI = "content://org.autojs.autojs.debug.provider/debug-server"
DEBUG_SERVER_READY_STATE = 2
PROVIDER_NOT_FOUND_MARKER = "Could not find provider"
ADB_HELP_URL = "https://segmentfault.com/a/1190000021822394"
DOCS_URL = "https://docs.autojs6.com/"

# --- Display ---
RECORD_PREFIX = "[ Record ] - "
OPTIONAL_PREFIX = "[ Optional ] - "

# --- Storage ---
CONFIG_DIR = Path(
    os.environ.get("AUTOJS6_BRIDGE_HOME", Path.home() / ".autojs6-bridge")
)
STORAGE_FILE = CONFIG_DIR / "state.json"
STORAGE_KEY = "autojs6.devices"
