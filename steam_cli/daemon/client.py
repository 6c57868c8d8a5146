"""Foreground functions for managing the daemon process."""
import logging
import os
import signal
import subprocess
import sys

from ..exc import DaemonError
from ..store import DaemonState, daemon_state_store, utcnow
from .utils import cleanup_stale_files, is_process_alive, read_daemon_pid, write_pid_file

logger = logging.getLogger(__name__)


def is_daemon_running():
    """Check if a daemon is currently running.

    A PID file whose process is gone is stale: it is removed and the daemon reported as not running.

    """
    pid = read_daemon_pid()
    if pid is None:
        return False

    if not is_process_alive(pid):
        logger.debug('Removing stale daemon files for PID %d', pid)
        cleanup_stale_files()
        return False

    return True


def start_daemon():
    """Spawn a detached `steam daemon run` process.

    Returns:
        int: PID of the daemon.

    Raises:
        DaemonError: A daemon is already running or the process could not be started.

    """
    if is_daemon_running():
        raise DaemonError('daemon already running')

    try:
        process = subprocess.Popen(
            [sys.executable, '-m', 'steam_cli', 'daemon', 'run'],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
            close_fds=True,
        )
    except OSError as e:
        raise DaemonError(f'failed to start daemon: {e}')

    try:
        write_pid_file(process.pid)
        daemon_state_store().save(DaemonState(pid=process.pid, start_time=utcnow()))
    except OSError as e:
        raise DaemonError(f'failed to save daemon state: {e}')

    logger.info('Daemon started with PID %d', process.pid)
    return process.pid


def stop_daemon():
    """Send SIGTERM to the daemon. Does not wait for it to exit.

    Raises:
        DaemonError: No daemon is running or it could not be signalled.

    """
    if not is_daemon_running():
        raise DaemonError('daemon not running')

    pid = read_daemon_pid()
    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as e:
        raise DaemonError(f'failed to stop daemon: {e}')

    logger.info('Sent SIGTERM to daemon with PID %d', pid)
    return pid


def daemon_status():
    """Report liveness and the last persisted snapshot.

    Returns:
        tuple[bool, DaemonState | None]: Whether the daemon runs, and its snapshot if it does.

    Raises:
        DaemonError: The daemon runs but its state could not be read.

    """
    if not is_daemon_running():
        return False, None

    store = daemon_state_store()
    if not store.exists():
        # Started but no heartbeat written yet
        return True, DaemonState(pid=read_daemon_pid())

    state = store.load()
    if not state.pid:
        raise DaemonError(f'unreadable daemon state in {store.path}')
    return True, state
