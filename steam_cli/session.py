"""Turns the network client's event stream into persisted session state.

`EventTranslator` consumes `NetworkClient.events()` in a daemon `Thread` and
maps every event to a transition of the `SessionState` stored on disk::

    Disconnected -> Connecting -> Connected -> (Authenticating) -> Authenticated
                                                                 -> AwaitingGuardCode
                                                                 -> Failed

A guard code restarts the sequence on a fresh connection. `Failed` is not
terminal; the operator may retry subject to the rate-limit governor.

Only one translator may consume a given client. The loop never raises: classified
failures are written to the session file and the loop keeps observing events,
since a disconnect usually follows a failed logon.

"""
from collections.abc import Callable
import logging
from threading import Event, Lock, Thread

from .client import (
    ChatMessage,
    ClientEvent,
    Connected,
    Disconnected,
    LogOnDetails,
    LogOnFailed,
    LoggedOn,
    LoginKey,
    NetworkClient,
    PersonaState,
)
from .config import GUARD_RECONNECT_DELAY
from .eresult import CodeType, EResult, ErrorClass, classify, code_type_for, describe, needs_guard_code, result_name
from .ratelimit import RateLimitGovernor
from .store import SessionPhase, SessionState, StateFile, session_store

logger = logging.getLogger(__name__)

MessageHandler = Callable[[int, str], None]


def log_message(sender: int, message: str):
    logger.info('Message from %d: %s', sender, message)


def logon_details(session: SessionState, code: str = '') -> LogOnDetails:
    """Build the logon request replaying the stored credentials.

    A remembered-login key is preferred over the password. A guard code goes in the field
    matching the kind of code the pending step asked for.

    """
    details = LogOnDetails(username=session.username)
    if session.login_key and not code:
        details.login_key = session.login_key
    else:
        details.password = session.password
    if code:
        if session.code_type == CodeType.TWO_FACTOR:
            details.two_factor_code = code
        else:
            details.auth_code = code
    return details


class EventTranslator:
    """The session state machine for one `NetworkClient` handle."""

    def __init__(self, client: NetworkClient, store: StateFile[SessionState] | None = None,
                 governor: RateLimitGovernor | None = None, auto_login: bool = True,
                 message_handler: MessageHandler | None = None,
                 guard_reconnect_delay: float = GUARD_RECONNECT_DELAY):
        """Initialize an `EventTranslator`.

        Args:
            client: The handle whose events to consume.
            store: Session file to persist transitions to.
            governor: Rate-limit governor told about every logon outcome.
            auto_login: `True` to log on with the stored credentials as soon as the connection is up.
                Callers that want to log on explicitly switch it off and back on afterwards.
            message_handler: Called with `(sender, message)` for chat messages on an authenticated session.
            guard_reconnect_delay: Seconds to wait before reconnecting so a guard code can be submitted.

        """
        self.client = client
        self.store = store or session_store()
        self.governor = governor or RateLimitGovernor()
        self.auto_login = auto_login
        self.message_handler = message_handler or log_message
        self.guard_reconnect_delay = guard_reconnect_delay

        self.phase = SessionPhase.DISCONNECTED
        self.last_result: EResult | int | None = None
        self._password: str | None = None
        self._replayed_login_key = False
        self._connected = Event()
        self._logon_done = Event()
        self._stopped = Event()
        self._thread: Thread | None = None
        self._lock = Lock()

    def __repr__(self):
        return f'<EventTranslator {self.phase} {self.client!r}>'

    def start(self):
        """Start consuming the client's events in a daemon `Thread`.

        Raises:
            RuntimeError: This translator is already consuming events.

        """
        with self._lock:
            if self._thread is not None:
                raise RuntimeError('Event translation loop already running for this client')
            self._thread = Thread(daemon=True, target=self._run, name='steam-events')
            self._thread.start()

    def stop(self, timeout: float | None = 1):
        """Stop reacting to events. Subsequent events are dropped without being persisted."""
        self._stopped.set()
        self._connected.set()
        self._logon_done.set()
        thread = self._thread
        if timeout and thread is not None and thread.is_alive():
            thread.join(timeout)

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def _run(self):
        try:
            for event in self.client.events():
                if self._stopped.is_set():
                    break
                self.handle_event(event)
        except Exception:
            logger.error('Event stream ended with an error', exc_info=True)
        logger.debug('Event translation loop finished')

    def connect(self, password: str | None = None):
        """Open the connection; logon follows on `Connected` when `auto_login` is set.

        Args:
            password: Password for this attempt, kept in memory until the logon succeeds.

        """
        if password is not None:
            self._password = password
        self._connected.clear()
        self._logon_done.clear()
        self.phase = SessionPhase.CONNECTING
        self.client.connect()

    def log_on(self, details: LogOnDetails):
        """Submit a logon request on the open connection."""
        self._logon_done.clear()
        self.last_result = None
        self._replayed_login_key = bool(details.login_key)
        self.phase = SessionPhase.AUTHENTICATING
        self.client.log_on(details)

    def wait_connected(self, timeout: float) -> bool:
        """Wait until the connection is up. Returns `False` on timeout."""
        return self._connected.wait(timeout) and self.client.is_connected()

    def wait_logon(self, timeout: float) -> EResult | int | None:
        """Wait for the outcome of the pending logon. Returns `None` on timeout."""
        self._logon_done.wait(timeout)
        return self.last_result

    def handle_event(self, event: ClientEvent):
        """Apply one event to the persisted session state."""
        try:
            match event:
                case Connected():
                    self._on_connected()
                case LoggedOn(steam_id=steam_id):
                    self._on_logged_on(steam_id)
                case LogOnFailed(result=result):
                    self._on_logon_failed(result)
                case LoginKey(login_key=login_key):
                    self._on_login_key(login_key)
                case Disconnected():
                    self._on_disconnected()
                case ChatMessage(sender=sender, message=message):
                    self._on_chat_message(sender, message)
                case _:
                    logger.debug('Ignoring unknown event %r', event)
        except Exception:
            logger.error('Unhandled exception while handling %r', event, exc_info=True)

    def _on_connected(self):
        logger.info('Connected to Steam servers')

        def mutate(state: SessionState):
            state.connected = True
            state.last_error = ''

        session = self.store.update(mutate)
        self.phase = SessionPhase.CONNECTED
        self._connected.set()

        if not self.auto_login:
            return
        if session.needs_code:
            # A logon without the code would only be denied again; `submit_guard_code` logs on.
            logger.info('Waiting for a Steam Guard code before logging on')
            return
        if self._password is not None:
            session.password = self._password
        if not session.username or not session.secret:
            logger.warning('No stored credentials, not logging on')
            return
        self.log_on(logon_details(session))

    def _on_logged_on(self, steam_id: int):
        self.governor.record_attempt(EResult.OK)
        logger.info('Authentication successful')

        def mutate(state: SessionState):
            state.connected = True
            state.authenticated = True
            state.needs_code = False
            state.steam_id = steam_id or self.client.steam_id
            state.last_error = ''
            state.last_result = int(EResult.OK)

        self.store.update(mutate)
        self._password = None
        self.phase = SessionPhase.AUTHENTICATED
        self.last_result = EResult.OK
        self._logon_done.set()

        self.client.set_persona_state(PersonaState.ONLINE)
        self.on_logged_on()

    def _on_logon_failed(self, result: EResult | int):
        self.governor.record_attempt(result)
        error_class = classify(result)
        logger.warning('Authentication failed (%s): %s', result_name(result), describe(result))

        def mutate(state: SessionState):
            state.authenticated = False
            state.last_error = f'Authentication failed: {result_name(result)}'
            state.last_result = int(result)
            if needs_guard_code(result):
                state.needs_code = True
                state.code_type = code_type_for(result).value
            if error_class == ErrorClass.CREDENTIAL_INVALID and self._replayed_login_key:
                # The remembered-login key was revoked: the operator has to log in again.
                state.login_key = ''

        session = self.store.update(mutate)
        self.phase = SessionPhase.AWAITING_GUARD_CODE if session.needs_code else SessionPhase.FAILED
        self.last_result = result
        self._logon_done.set()

    def _on_login_key(self, login_key: str):
        logger.debug('Received remembered-login key')

        def mutate(state: SessionState):
            state.login_key = login_key
            state.password = ''

        self.store.update(mutate)

    def _on_disconnected(self):
        logger.info('Disconnected from Steam')

        def mutate(state: SessionState):
            state.connected = False
            state.authenticated = False

        session = self.store.update(mutate)
        interrupted = self.phase == SessionPhase.AUTHENTICATING
        self.phase = SessionPhase.DISCONNECTED
        self._connected.set()
        if interrupted:
            # No logon result will arrive on this connection; last_result stays None.
            self._logon_done.set()

        if session.needs_code and not session.authenticated:
            self.reconnect_for_guard_code()
        else:
            self.on_disconnected()

    def reconnect_for_guard_code(self):
        """Reopen the connection so that a guard code can be submitted without retyping the password."""
        logger.info('Reconnecting for Steam Guard submission...')
        if self._stopped.wait(self.guard_reconnect_delay):
            return
        self.connect()

    def _on_chat_message(self, sender: int, message: str):
        if self.phase != SessionPhase.AUTHENTICATED:
            logger.debug('Dropping message from %d on an unauthenticated session', sender)
            return
        self.message_handler(sender, message)

    def on_logged_on(self):
        """Called after a successful logon has been persisted."""
        pass

    def on_disconnected(self):
        """Called after a disconnect that does not wait for a guard code."""
        pass
