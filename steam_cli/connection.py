"""Deciding how a command gets a live, authenticated connection.

A `ConnectionManager` owns the single network-client handle of a CLI process.
Every operation that creates, disposes or re-authenticates the handle holds the
manager's lock for its duration; the event loop spawned for the handle runs
unlocked.

Example::

    manager = ConnectionManager()
    try:
        manager.ensure_connection()
        manager.send_message(76561198000000000, 'hello')
    finally:
        manager.close()

"""
from collections.abc import Callable, Iterator
from contextlib import contextmanager
import logging
from threading import Lock

from .client import ChatEntryType, NetworkClient, PersonaState, WSNetworkClient
from .config import CONNECT_TIMEOUT, DAEMON_ATTACH_TIMEOUT, LOGON_TIMEOUT
from .daemon.client import is_daemon_running
from .eresult import EResult, describe, needs_guard_code
from .exc import GuardCodeNotNeeded, LogonFailed, NotAuthenticated, RateLimited, ReconnectTimeout
from .ratelimit import RateLimitGovernor
from .session import EventTranslator, MessageHandler, logon_details
from .store import SessionState, StateFile, session_store

logger = logging.getLogger(__name__)


class ClientHandle:
    """A network client together with the one translator consuming its events."""

    def __init__(self, client: NetworkClient, translator: EventTranslator):
        self.client = client
        self.translator = translator

    def __repr__(self):
        return f'<ClientHandle {self.client!r}>'

    @property
    def is_active(self) -> bool:
        """Connected with a known identity."""
        return not self.translator.stopped and self.client.is_connected() and self.client.steam_id != 0

    def dispose(self):
        """Stop the translator, then close the client.

        The translator is stopped first so that the resulting disconnect is not written to the
        session file: it keeps the last progress observed, as after a process exit.

        """
        self.translator.stop(timeout=None)
        try:
            self.client.close()
        except Exception:
            logger.warning('Error closing %r', self.client, exc_info=True)
        self.translator.stop()


class ConnectionManager:
    def __init__(self, client_factory: Callable[[], NetworkClient] | None = None,
                 daemon_probe: Callable[[], bool] | None = None,
                 store: StateFile[SessionState] | None = None,
                 governor: RateLimitGovernor | None = None,
                 message_handler: MessageHandler | None = None,
                 connect_timeout: float = CONNECT_TIMEOUT,
                 logon_timeout: float = LOGON_TIMEOUT,
                 attach_timeout: float = DAEMON_ATTACH_TIMEOUT):
        """Initialize a `ConnectionManager`.

        Args:
            client_factory: Creates a new, unconnected network client. Defaults to `WSNetworkClient`.
            daemon_probe: Reports whether a daemon is alive. Defaults to `is_daemon_running`.
            store: Session file.
            governor: Rate-limit governor consulted before every logon.
            message_handler: Receives chat messages arriving on the handle.
            connect_timeout: Seconds to wait for the connection to come up.
            logon_timeout: Seconds to wait for a logon result.
            attach_timeout: Seconds to wait for each step while a daemon holds a session.

        """
        self.client_factory = client_factory or WSNetworkClient
        self.daemon_probe = daemon_probe or is_daemon_running
        self.store = store or session_store()
        self.governor = governor or RateLimitGovernor()
        self.message_handler = message_handler
        self.connect_timeout = connect_timeout
        self.logon_timeout = logon_timeout
        self.attach_timeout = attach_timeout

        self._lock = Lock()
        self._handle: ClientHandle | None = None

    @contextmanager
    def acquire(self) -> Iterator[ClientHandle | None]:
        """Hold the manager's lock and yield the current handle, if any."""
        with self._lock:
            yield self._handle

    def _open_handle(self, auto_login: bool) -> ClientHandle:
        """Replace the current handle with a fresh one whose events are being consumed."""
        self._dispose_handle()
        client = self.client_factory()
        translator = EventTranslator(
            client, store=self.store, governor=self.governor, auto_login=auto_login,
            message_handler=self.message_handler,
        )
        handle = ClientHandle(client, translator)
        translator.start()
        self._handle = handle
        return handle

    def _dispose_handle(self):
        if self._handle is not None:
            self._handle.dispose()
            self._handle = None

    def _check_rate_limit(self):
        check = self.governor.check()
        if check.blocked:
            raise RateLimited(check.reason, check.remaining)
        if check.warning:
            logger.warning(check.warning)

    def _wait_connected(self, handle: ClientHandle, timeout: float):
        if not handle.translator.wait_connected(timeout):
            self._dispose_handle()
            raise ReconnectTimeout('Timed out connecting to Steam')

    def _wait_logon(self, handle: ClientHandle, timeout: float) -> EResult | int:
        result = handle.translator.wait_logon(timeout)
        if result is None:
            self._dispose_handle()
            raise ReconnectTimeout('Steam did not answer the logon')
        return result

    def ensure_connection(self):
        """Make sure this process holds an authenticated connection.

        Reuses the current handle when it is live. Otherwise logs on again from the stored
        credentials, with shorter waits when a daemon already keeps the account online.

        Raises:
            NotAuthenticated: No stored credentials, or the account never logged in.
            RateLimited: The rate-limit governor blocked the logon.
            ReconnectTimeout: No connection or logon result within the wait window.
            LogonFailed: Steam rejected the stored credentials.

        """
        with self._lock:
            if self._handle is not None and self._handle.is_active:
                return

            session = self.store.load()
            if not session.can_resume:
                raise NotAuthenticated()

            if self.daemon_probe():
                # The daemon's socket is not shared; this is a parallel session for this process.
                logger.info('Using persistent daemon connection...')
                connect_timeout = logon_timeout = self.attach_timeout
            else:
                logger.info('Reconnecting to Steam...')
                connect_timeout, logon_timeout = self.connect_timeout, self.logon_timeout

            self._check_rate_limit()
            handle = self._open_handle(auto_login=False)
            handle.translator.connect()
            self._wait_connected(handle, connect_timeout)
            handle.translator.log_on(logon_details(session))
            result = self._wait_logon(handle, logon_timeout)
            handle.translator.auto_login = True

            if result != EResult.OK:
                self._dispose_handle()
                raise LogonFailed(result, describe(result))

            handle.client.set_persona_state(PersonaState.ONLINE)
            logger.info('Reconnected successfully')

    def start_login(self, username: str, password: str) -> SessionState:
        """Log in with a username and password.

        Returns once Steam answered the logon. The returned session tells whether the logon
        succeeded or a guard code is needed.

        Raises:
            RateLimited: The rate-limit governor blocked the logon.
            ReconnectTimeout: No connection or logon result within the wait window.

        """
        with self._lock:
            self._check_rate_limit()
            # Kept on disk so that `auth code` from another invocation can resubmit it.
            self.store.save(SessionState(username=username, password=password))

            handle = self._open_handle(auto_login=True)
            handle.translator.connect(password=password)
            self._wait_connected(handle, self.connect_timeout)
            self._wait_logon(handle, self.logon_timeout)
            return self.store.load()

    def submit_guard_code(self, code: str) -> SessionState:
        """Log in again on a fresh connection with a Steam Guard code attached.

        Raises:
            GuardCodeNotNeeded: The stored session is not waiting for a code.
            NotAuthenticated: No username is stored.
            RateLimited: The rate-limit governor blocked the logon.
            ReconnectTimeout: No connection or logon result within the wait window.

        """
        session = self.store.load()
        if not session.needs_code:
            raise GuardCodeNotNeeded()
        if not session.username:
            raise NotAuthenticated("no username stored - use 'steam auth login' first")

        with self._lock:
            self._check_rate_limit()
            handle = self._open_handle(auto_login=False)
            handle.translator.connect()
            self._wait_connected(handle, self.connect_timeout)

            def clear_needs_code(state: SessionState):
                state.needs_code = False

            self.store.update(clear_needs_code)
            handle.translator.log_on(logon_details(session, code))
            handle.translator.auto_login = True
            result = self._wait_logon(handle, self.logon_timeout)
            if result != EResult.OK and not needs_guard_code(result):
                logger.warning('Logon with guard code failed: %s', describe(result))
            return self.store.load()

    def logout(self):
        """Drop the connection and forget the stored session."""
        with self._lock:
            self._dispose_handle()
            self.store.clear()

    def auth_status(self) -> SessionState:
        return self.store.load()

    def send_message(self, steam_id: int, message: str):
        """Send a chat message, connecting first if needed."""
        self.ensure_connection()
        with self.acquire() as handle:
            if handle is None:
                raise NotAuthenticated()
            # Presence silently degrades unless it is reasserted.
            handle.client.set_persona_state(PersonaState.ONLINE)
            handle.client.send_message(steam_id, ChatEntryType.CHAT_MSG, message)

    def close(self):
        with self._lock:
            self._dispose_handle()
