"""Central configuration for paths and constants."""

import os
from pathlib import Path

# Data directory, override with CHATWORKSPACE_DATA_DIR env var
DATA_DIR = Path(
    os.environ.get("CHATWORKSPACE_DATA_DIR", str(Path.home() / ".chatworkspace"))
)

# Local annotation store
SQLITE_PATH = DATA_DIR / "workspace.db"

# File-backed share directory, used by the server and when no REMOTE_URL is set
SHARED_DIR = Path(os.environ.get("CHATWORKSPACE_SHARED_DIR", str(DATA_DIR / "shared")))

# Base URL of a running share server, e.g. http://localhost:8765
REMOTE_URL = os.environ.get("CHATWORKSPACE_REMOTE_URL", "")
REMOTE_TIMEOUT = 30.0

# Base for ?shared= / ?open= links shown to the user
APP_URL = os.environ.get("CHATWORKSPACE_APP_URL", "http://localhost:8765/")

# Salt scoping every conversation identity
HASH_SALT = os.environ.get("CHATWORKSPACE_HASH_SALT", "")

# Storage keys are ChatWorkspace_<id>[_facet]
KEY_PREFIX = "ChatWorkspace"

# Accepted conversation identity tokens
IDENTITY_PATTERN = r"^[A-Za-z0-9]{32,128}$"

# Outline rendering
SUMMARY_LENGTH = 50  # Characters of turn text in the default outline summary
INDENT_WIDTH = 2  # Spaces per outline indent level

# Server
SERVER_HOST = "127.0.0.1"
SERVER_PORT = 8765
