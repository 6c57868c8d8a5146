"""Utility functions for daemon paths and liveness."""
import logging
import os

from ..config import DAEMON_PID_FILE, DAEMON_STATE_FILE, LOG_DIR, get_config_dir, get_config_path
from ..store import daemon_state_store

logger = logging.getLogger(__name__)


def get_daemon_pid_path():
    return get_config_path(DAEMON_PID_FILE)


def get_daemon_state_path():
    return get_config_path(DAEMON_STATE_FILE)


def get_daemon_log_path():
    log_dir = os.path.join(get_config_dir(), LOG_DIR)
    os.makedirs(log_dir, exist_ok=True)
    return os.path.join(log_dir, 'daemon.log')


def write_pid_file(pid):
    """Write `pid` to the PID file with proper flushing and syncing."""
    pid_path = get_daemon_pid_path()
    fd = os.open(pid_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w') as f:
        f.write(str(pid))
        f.flush()
        os.fsync(f.fileno())


def read_daemon_pid():
    """Return the recorded daemon PID, or `None` if there is none.

    The PID file is authoritative; the state snapshot is consulted if it is missing.

    """
    try:
        with open(get_daemon_pid_path(), 'r') as f:
            return int(f.read().strip())
    except (OSError, ValueError):
        pass

    pid = daemon_state_store().load().pid
    return pid or None


def is_process_alive(pid):
    """Check if a process exists (signal 0 doesn't kill, just checks)."""
    if pid is None or pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, but owned by someone else
        return True
    except OSError:
        return False
    return True


def cleanup_stale_files():
    """Remove stale PID and state files."""
    for path in (get_daemon_pid_path(), get_daemon_state_path()):
        try:
            os.unlink(path)
        except OSError:
            pass
