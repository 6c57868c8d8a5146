"""The network client collaborator.

The Steam protocol itself is spoken by a gateway; this module defines the
interface the rest of the package relies on (`NetworkClient`), the events it
produces, and `WSNetworkClient`, which talks to the gateway over a websocket.

Gateway messages are JSON objects, one per text frame. The client sends::

    {"type": "logon", "username": ..., "password": ..., "auth_code": ..., "two_factor_code": ...,
     "login_key": ..., "remember_password": true}
    {"type": "set_persona_state", "state": 1}
    {"type": "send_message", "steam_id": 76561198000000000, "entry_type": 1, "message": "hi"}
    {"type": "request_offline_messages"}

and receives::

    {"event": "logged_on", "steam_id": 76561198000000000}
    {"event": "logon_failed", "result": 63}
    {"event": "login_key", "login_key": "..."}
    {"event": "chat_message", "sender": 76561198000000001, "message": "hi"}
    {"event": "logged_off", "result": 6}

Connection establishment and loss are reported as `Connected` and `Disconnected`.

"""
from collections.abc import Iterator
from dataclasses import dataclass, field
import enum
import errno
import logging
import queue
import ssl
from threading import Event, Lock, Thread
from typing import Protocol

from websocket import WebSocketApp
from websocket._exceptions import WebSocketConnectionClosedException

from . import ejson as json
from .config import get_gateway_uri, get_verify_ssl
from .eresult import EResult, to_result
from .exc import ClientException

logger = logging.getLogger(__name__)


class PersonaState(enum.IntEnum):
    OFFLINE = 0
    ONLINE = 1
    BUSY = 2
    AWAY = 3
    SNOOZE = 4


class ChatEntryType(enum.IntEnum):
    CHAT_MSG = 1
    TYPING = 2


@dataclass
class LogOnDetails:
    username: str
    password: str = field(default='', repr=False)
    auth_code: str = ''
    two_factor_code: str = ''
    login_key: str = field(default='', repr=False)
    remember_password: bool = True


class ClientEvent:
    """Base class of the events yielded by `NetworkClient.events`."""


@dataclass
class Connected(ClientEvent):
    pass


@dataclass
class LoggedOn(ClientEvent):
    steam_id: int


@dataclass
class LogOnFailed(ClientEvent):
    result: EResult | int


@dataclass
class LoginKey(ClientEvent):
    login_key: str = field(repr=False)


@dataclass
class Disconnected(ClientEvent):
    pass


@dataclass
class ChatMessage(ClientEvent):
    sender: int
    message: str


class NetworkClient(Protocol):
    """What the session state machine needs from a network client."""

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def close(self) -> None:
        """Disconnect for good and end the `events` stream."""

    def is_connected(self) -> bool: ...

    @property
    def steam_id(self) -> int:
        """Identity of the logged-on account, 0 if none."""

    def log_on(self, details: LogOnDetails) -> None: ...

    def set_persona_state(self, state: PersonaState) -> None: ...

    def send_message(self, steam_id: int, entry_type: ChatEntryType, message: str) -> None: ...

    def request_offline_messages(self) -> None: ...

    def events(self) -> Iterator[ClientEvent]: ...


_CLOSED = object()


class WSNetworkClient:
    """A `NetworkClient` backed by a websocket connection to the gateway.

    Every `connect()` opens a new `WebSocketApp` running in a daemon `Thread`. Events from all
    connections made by one instance go to the same stream, which ends after `close()`.

    """
    def __init__(self, uri: str | None = None, verify_ssl: bool | None = None):
        self.uri = uri or get_gateway_uri()
        self.verify_ssl = get_verify_ssl() if verify_ssl is None else verify_ssl

        self._events: queue.Queue = queue.Queue()
        self._lock = Lock()
        self._app: WebSocketApp | None = None
        self._open = Event()
        self._steam_id = 0
        self._closed = False

    def __repr__(self):
        return f'<WSNetworkClient {self.uri}>'

    def connect(self):
        """Open a new connection to the gateway in the background.

        `Connected` or `Disconnected` is emitted once the attempt resolves.

        """
        with self._lock:
            if self._closed:
                raise ClientException('Client is closed', errno.ESHUTDOWN)
            app = WebSocketApp(
                self.uri,
                on_open=self._on_open,
                on_message=self._on_message,
                on_error=self._on_error,
                on_close=self._on_close,
            )
            self._app = app

        sslopt = None if self.verify_ssl else {'cert_reqs': ssl.CERT_NONE}
        Thread(daemon=True, target=app.run_forever, kwargs={'sslopt': sslopt}).start()

    def disconnect(self):
        with self._lock:
            app = self._app
        if app is not None:
            app.close()

    def close(self):
        with self._lock:
            self._closed = True
        self.disconnect()
        self._events.put(_CLOSED)

    def is_connected(self) -> bool:
        return self._open.is_set()

    @property
    def steam_id(self) -> int:
        return self._steam_id

    def log_on(self, details: LogOnDetails):
        self._send({
            'type': 'logon',
            'username': details.username,
            'password': details.password,
            'auth_code': details.auth_code,
            'two_factor_code': details.two_factor_code,
            'login_key': details.login_key,
            'remember_password': details.remember_password,
        })

    def set_persona_state(self, state: PersonaState):
        self._send({'type': 'set_persona_state', 'state': int(state)})

    def send_message(self, steam_id: int, entry_type: ChatEntryType, message: str):
        self._send({'type': 'send_message', 'steam_id': steam_id, 'entry_type': int(entry_type), 'message': message})

    def request_offline_messages(self):
        self._send({'type': 'request_offline_messages'})

    def events(self) -> Iterator[ClientEvent]:
        while True:
            event = self._events.get()
            if event is _CLOSED:
                return
            yield event

    def _send(self, data: dict):
        """Send one JSON message to the gateway.

        Raises:
            ClientException: There is no open connection.

        """
        with self._lock:
            app = self._app
        if app is None or not self._open.is_set():
            raise ClientException('Not connected to Steam', errno.ENOTCONN)
        try:
            app.send(json.dumps(data))
        except (AttributeError, WebSocketConnectionClosedException):
            raise ClientException('Unexpected closure of remote connection', errno.ECONNABORTED)

    def _is_current(self, app) -> bool:
        with self._lock:
            return app is self._app

    def _on_open(self, app):
        if not self._is_current(app):
            return
        self._open.set()
        self._events.put(Connected())

    def _on_message(self, app, data):
        try:
            message = json.loads(data)
            event = self._parse(message)
        except Exception:
            logger.error('Unable to parse gateway message %r', data, exc_info=True)
            return

        if event is not None:
            self._events.put(event)

    def _parse(self, message: dict) -> ClientEvent | None:
        match message.get('event'):
            case 'logged_on':
                self._steam_id = int(message['steam_id'])
                return LoggedOn(self._steam_id)
            case 'logon_failed':
                self._steam_id = 0
                return LogOnFailed(to_result(int(message['result'])))
            case 'login_key':
                return LoginKey(message['login_key'])
            case 'chat_message':
                return ChatMessage(int(message['sender']), message['message'])
            case 'logged_off':
                logger.info('Logged off by Steam: %r', to_result(int(message.get('result', EResult.FAIL))))
                self._steam_id = 0
                return None
            case _:
                logger.debug('Ignoring unknown gateway message %r', message)
                return None

    def _on_error(self, app, e):
        logger.warning('Websocket client error: %r', e)

    def _on_close(self, app, code=None, reason=None):
        if not self._is_current(app):
            return
        logger.debug('Websocket closed with code=%r, reason=%r', code, reason)
        self._open.clear()
        self._steam_id = 0
        self._events.put(Disconnected())
