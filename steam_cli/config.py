"""Configuration for the steam CLI.

Values are module constants. Paths and the gateway address may be overridden
through the environment:

    STEAM_CLI_HOME        Directory holding the state files (default ``~/.steam-cli``).
    STEAM_CLI_GATEWAY     Websocket URI of the protocol gateway.
    STEAM_CLI_VERIFY_SSL  Set to ``0`` to skip certificate verification for ``wss://``.

"""
import os

CONFIG_DIR_ENV = 'STEAM_CLI_HOME'
GATEWAY_URI_ENV = 'STEAM_CLI_GATEWAY'
VERIFY_SSL_ENV = 'STEAM_CLI_VERIFY_SSL'

DEFAULT_CONFIG_DIR = '~/.steam-cli'
DEFAULT_GATEWAY_URI = 'ws://127.0.0.1:27080/steam'

CONFIG_DIR_PERMISSIONS = 0o700
STATE_FILE_PERMISSIONS = 0o600

SESSION_FILE = 'session.json'
RATE_LIMIT_FILE = 'rate_limit.json'
DAEMON_STATE_FILE = 'daemon_state.json'
DAEMON_PID_FILE = 'daemon.pid'
LOG_DIR = 'logs'

# Timeouts (in seconds)
CONNECT_TIMEOUT = 10  # Waiting for the gateway to acknowledge the connection
LOGON_TIMEOUT = 15  # Waiting for a logon result
DAEMON_ATTACH_TIMEOUT = 5  # Shorter waits while a daemon already holds a session
GUARD_RECONNECT_DELAY = 2  # Pause before reconnecting to accept a guard code

VERSION = '1.0.0'


def get_config_dir():
    """Return the configuration directory, creating it if needed."""
    config_dir = os.path.expanduser(os.environ.get(CONFIG_DIR_ENV) or DEFAULT_CONFIG_DIR)
    os.makedirs(config_dir, mode=CONFIG_DIR_PERMISSIONS, exist_ok=True)
    return config_dir


def get_config_path(name):
    return os.path.join(get_config_dir(), name)


def get_gateway_uri():
    return os.environ.get(GATEWAY_URI_ENV) or DEFAULT_GATEWAY_URI


def get_verify_ssl():
    return os.environ.get(VERIFY_SSL_ENV, '1') not in ('0', 'false', 'no')
