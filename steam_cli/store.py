"""Durable state shared between CLI invocations and the daemon.

Each record lives in its own JSON file under the configuration directory. The
files are the only channel through which separate processes communicate, so
reads fail soft: a missing or corrupt file yields the zero-value record.

There is no cross-process locking. `StateFile.update` is a plain
read-mutate-write; commands are issued serially by a human.

"""
from collections.abc import Callable
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timedelta, timezone
import enum
import logging
import os
import tempfile
from typing import Generic, TypeVar

from . import ejson as json
from .config import (
    DAEMON_STATE_FILE,
    RATE_LIMIT_FILE,
    SESSION_FILE,
    STATE_FILE_PERMISSIONS,
    CONFIG_DIR_PERMISSIONS,
    get_config_path,
)
from .eresult import CodeType

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionPhase(enum.StrEnum):
    """Progress of a connection and its authentication."""
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    AUTHENTICATING = 'authenticating'
    AUTHENTICATED = 'authenticated'
    AWAITING_GUARD_CODE = 'awaiting_guard_code'
    FAILED = 'failed'


class Record:
    """Mixin for dataclass records stored as JSON objects."""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict):
        """Build a record from `data`, ignoring unknown keys and wrongly-typed values."""
        defaults = cls()
        kwargs = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            default = getattr(defaults, f.name)
            if default is None:
                if value is None or isinstance(value, datetime):
                    kwargs[f.name] = value
            elif type(value) is type(default) or (isinstance(default, str) and isinstance(value, str)):
                kwargs[f.name] = value
            else:
                logger.debug('Ignoring %s.%s with unexpected value %r', cls.__name__, f.name, value)
        return cls(**kwargs)

    def normalize(self):
        """Restore the record's invariants before it is written."""
        pass


@dataclass
class SessionState(Record):
    """Login and connection progress of the (single) operator account.

    `password` is only kept until the remote issues a remembered-login key, see `login_key`.

    """
    username: str = ''
    password: str = ''
    login_key: str = ''
    connected: bool = False
    authenticated: bool = False
    needs_code: bool = False
    code_type: str = CodeType.EMAIL.value
    steam_id: int = 0
    last_error: str = ''
    last_result: int = 0
    updated_at: datetime | None = None

    def normalize(self):
        # authenticated => connected and steam_id != 0; needs_code => not authenticated
        if self.needs_code or not self.connected or not self.steam_id:
            self.authenticated = False

    @property
    def secret(self) -> str:
        """The credential replayed on reconnect."""
        return self.login_key or self.password

    @property
    def can_resume(self) -> bool:
        """Whether a new connection can log in without asking the operator."""
        return bool(self.username and self.secret and self.steam_id)

    @property
    def phase(self) -> SessionPhase:
        if self.authenticated:
            return SessionPhase.AUTHENTICATED
        if self.needs_code:
            return SessionPhase.AWAITING_GUARD_CODE
        if self.last_error:
            return SessionPhase.FAILED
        if self.connected:
            return SessionPhase.CONNECTED
        return SessionPhase.DISCONNECTED


@dataclass
class RateLimitTracker(Record):
    last_attempt: datetime | None = None
    consecutive_fails: int = 0
    rate_limited: bool = False
    rate_limit_until: datetime | None = None

    def normalize(self):
        self.consecutive_fails = max(self.consecutive_fails, 0)

    def is_limited(self, now: datetime) -> bool:
        """Whether a remote or inferred rate limit is active at `now`.

        An expired limit reads as inactive; the file is not rewritten.

        """
        return self.rate_limited and self.rate_limit_until is not None and now < self.rate_limit_until

    def remaining(self, now: datetime) -> timedelta:
        if not self.is_limited(now):
            return timedelta(0)
        return self.rate_limit_until - now


@dataclass
class DaemonState(Record):
    pid: int = 0
    start_time: datetime | None = None
    connected: bool = False
    steam_id: int = 0
    username: str = ''


R = TypeVar('R', bound=Record)


class StateFile(Generic[R]):
    """A JSON file holding one record."""

    def __init__(self, path: str, record_type: type[R]):
        self.path = path
        self.record_type = record_type

    def __repr__(self):
        return f'<StateFile[{self.record_type.__name__}] {self.path}>'

    def load(self) -> R:
        """Read the record. Never raises: a missing or corrupt file yields the zero value."""
        try:
            with open(self.path, 'r') as f:
                data = json.loads(f.read())
        except FileNotFoundError:
            return self.record_type()
        except (OSError, ValueError) as e:
            logger.warning('Ignoring unreadable state file %s: %s', self.path, e)
            return self.record_type()

        if not isinstance(data, dict):
            logger.warning('Ignoring state file %s: expected an object', self.path)
            return self.record_type()
        return self.record_type.from_dict(data)

    def save(self, record: R):
        """Atomically write `record` with owner-only permissions.

        Raises:
            OSError: The file could not be written.

        """
        if hasattr(record, 'updated_at'):
            record.updated_at = utcnow()
        record.normalize()

        directory = os.path.dirname(self.path)
        os.makedirs(directory, mode=CONFIG_DIR_PERMISSIONS, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.tmp-', suffix='.json')
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(record.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, STATE_FILE_PERMISSIONS)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def update(self, mutator: Callable[[R], None]) -> R:
        """Load the record, apply `mutator` to it in place and save it."""
        record = self.load()
        mutator(record)
        self.save(record)
        return record

    def clear(self):
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass

    def exists(self) -> bool:
        return os.path.exists(self.path)


def session_store() -> StateFile[SessionState]:
    return StateFile(get_config_path(SESSION_FILE), SessionState)


def rate_limit_store() -> StateFile[RateLimitTracker]:
    return StateFile(get_config_path(RATE_LIMIT_FILE), RateLimitTracker)


def daemon_state_store() -> StateFile[DaemonState]:
    return StateFile(get_config_path(DAEMON_STATE_FILE), DaemonState)
