"""Keeps login attempts below the remote service's abuse protection.

The governor must be consulted before every login attempt (`check` or
`should_block`) and told about every login outcome (`record_attempt`). Too many
failed logins get the account temporarily locked by the remote service, so
this is the only thing standing between a typo-prone operator and a lockout.

"""
from collections.abc import Callable
from datetime import datetime, timedelta
import logging
from typing import NamedTuple

from .eresult import EResult, ErrorClass, classify, counts_as_failure
from .store import RateLimitTracker, StateFile, rate_limit_store, utcnow

logger = logging.getLogger(__name__)

MIN_ATTEMPT_SPACING = timedelta(seconds=5)
COOLDOWN = timedelta(minutes=15)
WARN_THRESHOLD = 3
ESCALATE_THRESHOLD = 5


class RateLimitCheck(NamedTuple):
    blocked: bool
    reason: str = ''
    remaining: timedelta = timedelta(0)
    warning: str = ''


def format_remaining(remaining: timedelta) -> str:
    minutes, seconds = divmod(max(int(remaining.total_seconds()), 0), 60)
    if minutes:
        return f'{minutes}m{seconds:02d}s'
    return f'{seconds}s'


class RateLimitGovernor:
    def __init__(self, store: StateFile[RateLimitTracker] | None = None,
                 clock: Callable[[], datetime] | None = None):
        self.store = store or rate_limit_store()
        self.clock = clock or utcnow

    def check(self) -> RateLimitCheck:
        """Decide whether a login attempt may be made now."""
        tracker = self.store.load()
        now = self.clock()

        if tracker.is_limited(now):
            remaining = tracker.remaining(now)
            return RateLimitCheck(
                True,
                f'RATE LIMITED - {format_remaining(remaining)} remaining. '
                'Steam has temporarily blocked login attempts.',
                remaining,
            )

        if tracker.last_attempt is not None and now - tracker.last_attempt < MIN_ATTEMPT_SPACING:
            remaining = MIN_ATTEMPT_SPACING - (now - tracker.last_attempt)
            return RateLimitCheck(
                True,
                'Login attempt too soon. Please wait a few seconds between login attempts.',
                remaining,
            )

        if tracker.consecutive_fails >= WARN_THRESHOLD:
            return RateLimitCheck(
                False,
                warning=f'{tracker.consecutive_fails} consecutive auth failures. '
                        'Consider waiting 15+ minutes to avoid rate limiting.',
            )

        return RateLimitCheck(False)

    def should_block(self) -> bool:
        result = self.check()
        if result.blocked:
            logger.warning('Login attempt blocked: %s', result.reason)
        elif result.warning:
            logger.warning(result.warning)
        return result.blocked

    def record_attempt(self, result: EResult | int):
        """Update the attempt history with the outcome of a login."""
        now = self.clock()

        def mutate(tracker: RateLimitTracker):
            tracker.last_attempt = now
            if result == EResult.OK:
                tracker.consecutive_fails = 0
                tracker.rate_limited = False
            elif classify(result) == ErrorClass.RATE_LIMITED:
                tracker.consecutive_fails += 1
                tracker.rate_limited = True
                tracker.rate_limit_until = now + COOLDOWN
                logger.warning('Rate limited by Steam, login attempts blocked for %s', COOLDOWN)
            elif counts_as_failure(result):
                tracker.consecutive_fails += 1
                if tracker.consecutive_fails >= ESCALATE_THRESHOLD:
                    tracker.rate_limited = True
                    tracker.rate_limit_until = now + COOLDOWN
                    logger.warning('Too many failures (%d), enforcing a %s cooldown',
                                   tracker.consecutive_fails, COOLDOWN)

        return self.store.update(mutate)

    def clear(self):
        """Forget the attempt history."""
        self.store.clear()
