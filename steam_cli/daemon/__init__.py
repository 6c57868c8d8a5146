"""Daemon functionality for a persistent Steam connection."""

from .client import daemon_status, is_daemon_running, start_daemon, stop_daemon
from .log_config import setup_cli_logging, setup_daemon_logging
from .server import DaemonSupervisor, run_daemon
from .utils import get_daemon_log_path, get_daemon_pid_path, get_daemon_state_path

__all__ = [
    'daemon_status',
    'is_daemon_running',
    'start_daemon',
    'stop_daemon',
    'run_daemon',
    'DaemonSupervisor',
    'setup_cli_logging',
    'setup_daemon_logging',
    'get_daemon_log_path',
    'get_daemon_pid_path',
    'get_daemon_state_path',
]
