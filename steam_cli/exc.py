"""Defines the exceptions raised while acquiring and supervising a Steam session."""
import errno
from datetime import timedelta


class ErrnoMixin:
    """Provides custom error codes and a function to get the name of an error code."""

    ENOTAUTHENTICATED = 207
    """No stored credentials or the session never logged in."""
    ERATELIMITED = 208
    """Login attempts are blocked by the rate-limit governor."""
    ELOGONFAILED = 209
    """The remote rejected a logon."""
    EDAEMON = 210
    """Daemon lifecycle precondition not met."""

    @classmethod
    def _get_errname(cls, code: int) -> str | None:
        """Get the name of an error given its error code.

        Returns:
            str: The name of the associated error.
            None: `code` does not match any known errors.

        """
        for k, v in ErrnoMixin.__dict__.items():
            if k.startswith('E') and v == code:
                return k
        return errno.errorcode.get(code)


class ClientException(ErrnoMixin, Exception):
    """Represents any exception that might arise from the steam CLI."""

    def __init__(self, error: str, errno: int | None = None):
        """Initialize `ClientException`.

        Args:
            error: An error message offering a reason for the exception.
            errno: An error code to classify the error.

        """
        super().__init__(error)
        self.errno = errno
        self.error = error

    def __str__(self):
        return self.error


class AuthError(ClientException):
    """A command could not obtain an authenticated connection."""
    pass


class NotAuthenticated(AuthError):
    def __init__(self, error: str = "not authenticated - use 'steam auth login' first"):
        super().__init__(error, ErrnoMixin.ENOTAUTHENTICATED)


class ReconnectTimeout(AuthError):
    """No terminal event arrived within the wait window."""
    def __init__(self, error: str = 'Timed out waiting for Steam'):
        super().__init__(error, errno.ETIMEDOUT)


class RateLimited(AuthError):
    """The rate-limit governor refused a login attempt."""

    def __init__(self, reason: str, remaining: timedelta | None = None):
        self.reason = reason
        self.remaining = remaining
        super().__init__(reason, ErrnoMixin.ERATELIMITED)


class LogonFailed(AuthError):
    """The remote answered a logon with a failure result."""

    def __init__(self, result, error: str):
        self.result = result
        super().__init__(error, ErrnoMixin.ELOGONFAILED)


class GuardCodeNotNeeded(ClientException):
    def __init__(self):
        super().__init__('Steam Guard code not currently needed')


class DaemonError(ClientException):
    """A daemon start, stop or status precondition was not met."""
    def __init__(self, error: str):
        super().__init__(error, ErrnoMixin.EDAEMON)
