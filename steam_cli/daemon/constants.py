"""Constants and enums for daemon functionality."""
from enum import StrEnum


class DaemonStatus(StrEnum):
    """Lifecycle of the daemon process."""
    NOT_RUNNING = 'not_running'
    STARTING = 'starting'
    RUNNING = 'running'
    STOPPING = 'stopping'


# Interval constants (in seconds)
HEARTBEAT_INTERVAL = 5  # Persist a DaemonState snapshot
PRESENCE_INTERVAL = 30  # Reassert online presence, it silently reverts otherwise
PRESENCE_REINFORCE_DELAY = 2  # Second presence assertion after logon
RECONNECT_DELAY = 5  # First wait after a disconnect
RECONNECT_MAX_DELAY = 300  # Backoff cap, attempts are never capped
SHUTDOWN_JOIN_TIMEOUT = 2  # Waiting for the loops to observe shutdown

# Exit codes of `steam daemon run`
EXIT_OK = 0
EXIT_NO_CREDENTIALS = 1
