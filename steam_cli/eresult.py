"""Result codes surfaced by the network client and their classification.

The numeric values are the remote service's own result codes. Only the codes
the login flow reacts to are named; anything else is kept as a plain integer
and classified as `ErrorClass.UNKNOWN`.

"""
import enum


class EResult(enum.IntEnum):
    OK = 1
    FAIL = 2
    NO_CONNECTION = 3
    INVALID_PASSWORD = 5
    LOGGED_IN_ELSEWHERE = 6
    TIMEOUT = 16
    BANNED = 17
    ACCOUNT_NOT_FOUND = 18
    SERVICE_UNAVAILABLE = 20
    ACCOUNT_DISABLED = 43
    ACCOUNT_LOGON_DENIED = 63
    INVALID_LOGIN_AUTH_CODE = 65
    RATE_LIMIT_EXCEEDED = 84
    ACCOUNT_LOGIN_DENIED_NEED_TWO_FACTOR = 85
    TWO_FACTOR_CODE_MISMATCH = 88


class ErrorClass(enum.StrEnum):
    """Error taxonomy used by the session state machine and the governor."""
    NONE = 'none'
    RATE_LIMITED = 'rate_limited'
    CREDENTIAL_INVALID = 'credential_invalid'
    GUARD_CODE_REQUIRED = 'guard_code_required'
    GUARD_CODE_INVALID = 'guard_code_invalid'
    TRANSIENT = 'transient'
    FATAL = 'fatal'
    UNKNOWN = 'unknown'


class CodeType(enum.StrEnum):
    """Kind of one-time code a guard step asks for."""
    EMAIL = 'email'
    TWO_FACTOR = 'two_factor'


_CLASSES = {
    EResult.OK: ErrorClass.NONE,
    EResult.RATE_LIMIT_EXCEEDED: ErrorClass.RATE_LIMITED,
    EResult.INVALID_PASSWORD: ErrorClass.CREDENTIAL_INVALID,
    EResult.ACCOUNT_NOT_FOUND: ErrorClass.CREDENTIAL_INVALID,
    EResult.ACCOUNT_LOGON_DENIED: ErrorClass.GUARD_CODE_REQUIRED,
    EResult.ACCOUNT_LOGIN_DENIED_NEED_TWO_FACTOR: ErrorClass.GUARD_CODE_REQUIRED,
    EResult.INVALID_LOGIN_AUTH_CODE: ErrorClass.GUARD_CODE_INVALID,
    EResult.TWO_FACTOR_CODE_MISMATCH: ErrorClass.GUARD_CODE_INVALID,
    EResult.FAIL: ErrorClass.TRANSIENT,
    EResult.NO_CONNECTION: ErrorClass.TRANSIENT,
    EResult.TIMEOUT: ErrorClass.TRANSIENT,
    EResult.SERVICE_UNAVAILABLE: ErrorClass.TRANSIENT,
    EResult.LOGGED_IN_ELSEWHERE: ErrorClass.TRANSIENT,
    EResult.ACCOUNT_DISABLED: ErrorClass.FATAL,
    EResult.BANNED: ErrorClass.FATAL,
}

_DESCRIPTIONS = {
    EResult.RATE_LIMIT_EXCEEDED: (
        'Rate limit exceeded - Steam has temporarily blocked login attempts. Wait 15+ minutes and try again. '
        'This is normal protection against brute force attacks.'
    ),
    EResult.ACCOUNT_LOGON_DENIED: (
        'Account login denied - Usually means Steam Guard email verification is required. '
        'Check your email for a verification code, or the account may be restricted.'
    ),
    EResult.INVALID_PASSWORD: (
        'Invalid username or password - Double-check your credentials. '
        'Too many invalid attempts may trigger rate limiting.'
    ),
    EResult.INVALID_LOGIN_AUTH_CODE: (
        'Invalid Steam Guard code - The code may be expired (they expire quickly) or mistyped. '
        'Request a new code if needed.'
    ),
    EResult.ACCOUNT_LOGIN_DENIED_NEED_TWO_FACTOR: (
        'Two-factor authentication required - Enter the code shown by the mobile authenticator.'
    ),
    EResult.TWO_FACTOR_CODE_MISMATCH: (
        'Two-factor code mismatch - The mobile authenticator code is incorrect or expired.'
    ),
    EResult.ACCOUNT_DISABLED: 'Account is disabled - Contact Steam Support. The account may be banned or suspended.',
    EResult.BANNED: 'Account is banned - Contact Steam Support.',
    EResult.ACCOUNT_NOT_FOUND: (
        'Account not found - Check the username spelling. The account may not exist or may be hidden.'
    ),
    EResult.SERVICE_UNAVAILABLE: (
        'Steam service unavailable - Steam servers may be down or under maintenance. '
        'Check steamstat.us for server status.'
    ),
    EResult.TIMEOUT: (
        'Connection timeout - Network issues or Steam servers are slow. '
        'Check your internet connection and try again.'
    ),
}


def to_result(value: int) -> EResult | int:
    """Return the `EResult` member for `value`, or `value` itself if it is not a known code."""
    try:
        return EResult(value)
    except ValueError:
        return value


def result_name(result: EResult | int) -> str:
    if isinstance(result, EResult):
        return result.name
    return f'EResult({result})'


def classify(result: EResult | int) -> ErrorClass:
    return _CLASSES.get(result, ErrorClass.UNKNOWN)


def code_type_for(result: EResult | int) -> CodeType:
    """Which kind of guard code a guard-class result asks for."""
    if result in (EResult.ACCOUNT_LOGIN_DENIED_NEED_TWO_FACTOR, EResult.TWO_FACTOR_CODE_MISMATCH):
        return CodeType.TWO_FACTOR
    return CodeType.EMAIL


def needs_guard_code(result: EResult | int) -> bool:
    return classify(result) in (ErrorClass.GUARD_CODE_REQUIRED, ErrorClass.GUARD_CODE_INVALID)


def counts_as_failure(result: EResult | int) -> bool:
    """Credential and authorization failures count toward the governor's escalation."""
    return classify(result) in (
        ErrorClass.CREDENTIAL_INVALID, ErrorClass.GUARD_CODE_REQUIRED, ErrorClass.GUARD_CODE_INVALID,
    )


def describe(result: EResult | int) -> str:
    """Operator guidance for a failed logon."""
    if (description := _DESCRIPTIONS.get(result)) is not None:
        return description
    return (
        f'Unknown authentication error ({result_name(result)}) - '
        'Check Steam status and verify your account is in good standing.'
    )
