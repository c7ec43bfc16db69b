"""Default locations and timings, overridable from the environment."""

import os
import sys
import tempfile

ENV_ADDRESS: str = "INSTANT_RPC_ADDRESS"
ENV_LOCK_PATH: str = "INSTANT_RPC_LOCK_PATH"
CHANNEL_NAME: str = "InstantRpcPipe"
DEFAULT_POLL_INTERVAL: float = 0.05
DEFAULT_MAX_POLL_INTERVAL: float = 0.5
LISTENER_BACKLOG: int = 16


def default_address() -> str:
    """Return the well-known listener address.

    :returns: ``$INSTANT_RPC_ADDRESS`` when set; otherwise a named pipe on
        Windows and a Unix socket in the temp directory elsewhere.
    """
    configured: str | None = os.environ.get(ENV_ADDRESS)
    if configured:
        return configured
    if sys.platform == "win32":
        return rf"\\.\pipe\{CHANNEL_NAME}"
    return os.path.join(tempfile.gettempdir(), f"{CHANNEL_NAME}.sock")


def default_lock_path() -> str:
    """Return the machine-wide host lock file.

    :returns: ``$INSTANT_RPC_LOCK_PATH`` when set, else a file in the temp directory.
    """
    configured: str | None = os.environ.get(ENV_LOCK_PATH)
    if configured:
        return configured
    return os.path.join(tempfile.gettempdir(), f"{CHANNEL_NAME}.lock")
