"""Daemon process implementation.

`steam daemon run` keeps one authenticated connection alive. Besides the event
translation loop it runs a presence loop (Steam silently drops the account to
an idle state unless "online" is reasserted) and a heartbeat loop on the main
thread that persists a `DaemonState` snapshot. SIGTERM and SIGINT set the
shutdown event which every loop waits on.

"""
from collections.abc import Callable
import logging
import os
import signal
from threading import Event, Thread

from ..client import NetworkClient, PersonaState, WSNetworkClient
from ..ratelimit import RateLimitGovernor
from ..session import EventTranslator
from ..store import DaemonState, SessionPhase, SessionState, StateFile, daemon_state_store, session_store, utcnow
from .constants import (
    EXIT_NO_CREDENTIALS,
    EXIT_OK,
    HEARTBEAT_INTERVAL,
    PRESENCE_INTERVAL,
    PRESENCE_REINFORCE_DELAY,
    RECONNECT_DELAY,
    RECONNECT_MAX_DELAY,
    SHUTDOWN_JOIN_TIMEOUT,
    DaemonStatus,
)
from .log_config import setup_daemon_logging
from .utils import cleanup_stale_files, write_pid_file

logger = logging.getLogger(__name__)


def log_daemon_message(sender: int, message: str):
    logger.info('[DAEMON] Message from %d: %s', sender, message)


class DaemonEventTranslator(EventTranslator):
    """Session state machine that hands logon and disconnect handling to the supervisor."""

    def __init__(self, client: NetworkClient, supervisor: 'DaemonSupervisor', **kwargs):
        super().__init__(client, **kwargs)
        self.supervisor = supervisor

    def _on_connected(self):
        if self.auto_login and self.governor.should_block():
            # Drop the connection; the reconnect backoff retries later.
            logger.warning('Logon blocked by the rate-limit governor, retrying later')
            self.client.disconnect()
            return
        if self.auto_login and self.store.load().needs_code:
            # Stay offline until `steam auth code` clears the flag; the reconnect backoff polls for it.
            logger.info('Waiting for a Steam Guard code, retrying later')
            self.client.disconnect()
            return
        super()._on_connected()

    def _on_logon_failed(self, result):
        super()._on_logon_failed(result)
        if self.phase == SessionPhase.AWAITING_GUARD_CODE:
            self.client.disconnect()

    def on_logged_on(self):
        self.supervisor.on_logged_on()

    def on_disconnected(self):
        self.supervisor.on_disconnected()

    def reconnect_for_guard_code(self):
        logger.warning("Steam Guard code required, use 'steam auth code <CODE>'")
        self.supervisor.on_disconnected()


class DaemonSupervisor:
    def __init__(self, client_factory: Callable[[], NetworkClient] | None = None,
                 session: StateFile[SessionState] | None = None,
                 state: StateFile[DaemonState] | None = None,
                 governor: RateLimitGovernor | None = None,
                 heartbeat_interval: float = HEARTBEAT_INTERVAL,
                 presence_interval: float = PRESENCE_INTERVAL,
                 presence_reinforce_delay: float = PRESENCE_REINFORCE_DELAY,
                 reconnect_delay: float = RECONNECT_DELAY,
                 reconnect_max_delay: float = RECONNECT_MAX_DELAY):
        """Initialize the daemon supervisor.

        Args:
            client_factory: Creates the network client. Defaults to `WSNetworkClient`.
            session: Session file holding the credentials.
            state: File the heartbeat snapshot is written to.
            governor: Rate-limit governor consulted before every logon.
            heartbeat_interval: Seconds between `DaemonState` snapshots.
            presence_interval: Seconds between online presence assertions.
            presence_reinforce_delay: Seconds after logon before the second presence assertion.
            reconnect_delay: First wait after a disconnect. Doubles on every further disconnect.
            reconnect_max_delay: Cap of the reconnect wait.

        """
        self.session = session or session_store()
        self.state = state or daemon_state_store()
        self.governor = governor or RateLimitGovernor()
        self.heartbeat_interval = heartbeat_interval
        self.presence_interval = presence_interval
        self.presence_reinforce_delay = presence_reinforce_delay
        self.reconnect_delay = reconnect_delay
        self.reconnect_max_delay = reconnect_max_delay

        self.client = (client_factory or WSNetworkClient)()
        self.translator = DaemonEventTranslator(
            self.client, self, store=self.session, governor=self.governor, message_handler=log_daemon_message,
        )
        self.shutdown_event = Event()
        self.status = DaemonStatus.NOT_RUNNING
        self.pid = os.getpid()
        self.start_time = utcnow()
        self.username = ''

        self._logged_on = Event()
        self._logon_generation = 0
        self._next_reconnect_delay = reconnect_delay
        self._presence_thread: Thread | None = None

    def run(self):
        """Run until `shutdown_event` is set. Returns the process exit code."""
        session = self.session.load()
        if not session.can_resume:
            logger.error('No authenticated session found')
            return EXIT_NO_CREDENTIALS

        self.status = DaemonStatus.STARTING
        self.username = session.username
        self.start_time = utcnow()
        write_pid_file(self.pid)

        self.translator.start()
        self._presence_thread = Thread(daemon=True, target=self._presence_loop, name='steam-presence')
        self._presence_thread.start()

        logger.info('Daemon started with PID %d', self.pid)
        self.status = DaemonStatus.RUNNING
        try:
            self.translator.connect()
            self._heartbeat_loop()
        finally:
            self._shutdown()
        return EXIT_OK

    def stop(self):
        self.shutdown_event.set()

    def on_logged_on(self):
        """Called from the event loop after every successful logon."""
        logger.info('Daemon authenticated')
        self._next_reconnect_delay = self.reconnect_delay
        self._set_online('logon')
        # Steam only pushes live messages to a session that asked for its offline ones.
        try:
            self.client.request_offline_messages()
        except Exception:
            logger.warning('Failed to request offline messages', exc_info=True)
        self._logon_generation += 1
        self._logged_on.set()

    def on_disconnected(self):
        """Called from the event loop after a disconnect: wait out the backoff and reconnect."""
        self._logged_on.clear()
        if self.shutdown_event.is_set():
            return

        delay = self._next_reconnect_delay
        self._next_reconnect_delay = min(delay * 2, self.reconnect_max_delay)
        logger.info('Daemon disconnected, reconnecting in %s seconds...', delay)
        if self.shutdown_event.wait(delay):
            return
        try:
            self.translator.connect()
        except Exception:
            logger.error('Reconnect failed', exc_info=True)

    def _set_online(self, reason: str):
        logger.debug('Setting persona state to online (%s)', reason)
        try:
            self.client.set_persona_state(PersonaState.ONLINE)
        except Exception:
            logger.warning('Failed to set persona state', exc_info=True)

    def _presence_loop(self):
        while not self.shutdown_event.is_set():
            if not self._logged_on.wait(1):
                continue
            generation = self._logon_generation
            if self.shutdown_event.wait(self.presence_reinforce_delay):
                return
            while self._logged_on.is_set() and generation == self._logon_generation:
                if self.client.is_connected():
                    self._set_online('reinforce')
                if self.shutdown_event.wait(self.presence_interval):
                    return

    def snapshot(self) -> DaemonState:
        return DaemonState(
            pid=self.pid,
            start_time=self.start_time,
            connected=self.client.is_connected(),
            steam_id=self.client.steam_id,
            username=self.username,
        )

    def write_heartbeat(self):
        snapshot = self.snapshot()
        logger.debug('Heartbeat: %s, connected=%s, steam_id=%d', self.status, snapshot.connected, snapshot.steam_id)
        try:
            self.state.save(snapshot)
        except OSError as e:
            logger.error('Failed to write daemon state: %s', e)

    def _heartbeat_loop(self):
        while not self.shutdown_event.is_set():
            self.write_heartbeat()
            self.shutdown_event.wait(self.heartbeat_interval)

    def _shutdown(self):
        self.status = DaemonStatus.STOPPING
        logger.info('Daemon shutting down...')
        self.shutdown_event.set()
        self._logged_on.clear()
        self.translator.stop(timeout=None)
        try:
            self.client.close()
        except Exception:
            logger.error('Error closing client', exc_info=True)
        self.translator.stop(timeout=SHUTDOWN_JOIN_TIMEOUT)
        if self._presence_thread is not None:
            self._presence_thread.join(SHUTDOWN_JOIN_TIMEOUT)
        self.state.clear()
        cleanup_stale_files()
        self.status = DaemonStatus.NOT_RUNNING
        logger.info('Daemon stopped')


def run_daemon(client_factory=None, log_file=None):
    """Entry point of the detached daemon process.

    Returns:
        int: Exit code.

    """
    setup_daemon_logging(log_file)
    supervisor = DaemonSupervisor(client_factory)

    def signal_handler(signum, frame):
        logger.info('Received signal %d, shutting down...', signum)
        supervisor.stop()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    exit_code = supervisor.run()
    if exit_code != EXIT_OK:
        cleanup_stale_files()
    return exit_code
