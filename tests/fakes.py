# SPDX-License-Identifier: LGPL-3.0-or-later
"""Test doubles shared by the test-suite."""

from datetime import datetime, timedelta, timezone
import os
import queue
import tempfile
import unittest
from unittest.mock import patch

from steam_cli.client import Connected, Disconnected, LoggedOn, LogOnFailed
from steam_cli.eresult import EResult

STEAM_ID = 76561198000000000
FRIEND_ID = 76561198000000001

_CLOSED = object()


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 7, 3, 16, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeClient:
    """Scriptable in-memory `NetworkClient`.

    `connect()` succeeds immediately unless `connect_ok` is false. Every `log_on()` answers with
    the next entry of `logon_results` (the last entry repeats) unless `respond` is false.

    """

    def __init__(self, logon_results=(EResult.OK,), steam_id=STEAM_ID, connect_ok=True, respond=True):
        self.logon_results = list(logon_results)
        self.assigned_steam_id = steam_id
        self.connect_ok = connect_ok
        self.respond = respond

        self.connected = False
        self.closed = False
        self.connect_calls = 0
        self.logons = []
        self.persona_states = []
        self.messages = []
        self.offline_requests = 0
        self._steam_id = 0
        self._events = queue.Queue()

    def push(self, event):
        self._events.put(event)

    def pending(self):
        """Drain the queued events without blocking."""
        events = []
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return events
            if event is not _CLOSED:
                events.append(event)

    def connect(self):
        self.connect_calls += 1
        if self.connect_ok:
            self.connected = True
            self.push(Connected())

    def disconnect(self):
        if self.connected:
            self.connected = False
            self._steam_id = 0
            self.push(Disconnected())

    def close(self):
        self.closed = True
        self.connected = False
        self._steam_id = 0
        self.push(_CLOSED)

    def is_connected(self):
        return self.connected

    @property
    def steam_id(self):
        return self._steam_id

    def log_on(self, details):
        self.logons.append(details)
        if not self.respond:
            return
        result = self.logon_results.pop(0) if len(self.logon_results) > 1 else self.logon_results[0]
        if result == EResult.OK:
            self._steam_id = self.assigned_steam_id
            self.push(LoggedOn(self.assigned_steam_id))
        else:
            self.push(LogOnFailed(result))

    def set_persona_state(self, state):
        self.persona_states.append(state)

    def send_message(self, steam_id, entry_type, message):
        self.messages.append((steam_id, entry_type, message))

    def request_offline_messages(self):
        self.offline_requests += 1

    def events(self):
        while True:
            event = self._events.get()
            if event is _CLOSED:
                return
            yield event


def pump(client, translator):
    """Feed the client's queued events to the translator on the calling thread."""
    while events := client.pending():
        for event in events:
            translator.handle_event(event)


class TempHomeTestCase(unittest.TestCase):
    """Points the configuration directory at a temporary directory."""

    def setUp(self):
        super().setUp()
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.home = tmp.name
        patcher = patch.dict(os.environ, {'STEAM_CLI_HOME': self.home})
        patcher.start()
        self.addCleanup(patcher.stop)
