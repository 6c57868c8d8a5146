# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the session state machine."""

import time
import unittest
from unittest.mock import patch

from steam_cli.client import ChatMessage, Disconnected, LoginKey, PersonaState
from steam_cli.eresult import CodeType, EResult
from steam_cli.ratelimit import RateLimitGovernor
from steam_cli.session import EventTranslator, logon_details
from steam_cli.store import SessionPhase, SessionState, rate_limit_store, session_store
from tests.fakes import FRIEND_ID, STEAM_ID, FakeClient, FakeClock, TempHomeTestCase, pump


class TranslatorTestCase(TempHomeTestCase):

    def setUp(self):
        super().setUp()
        self.store = session_store()
        self.clock = FakeClock()
        self.governor = RateLimitGovernor(rate_limit_store(), self.clock)
        self.received = []

    def make_translator(self, *logon_results, **kwargs):
        self.client = FakeClient(logon_results or (EResult.OK,))
        kwargs.setdefault('guard_reconnect_delay', 0)
        return EventTranslator(
            self.client, store=self.store, governor=self.governor,
            message_handler=lambda sender, message: self.received.append((sender, message)), **kwargs,
        )

    def login(self, translator, username='alice', password='hunter2'):
        self.store.save(SessionState(username=username, password=password))
        translator.connect(password=password)
        pump(self.client, translator)
        return self.store.load()


class TestLogonDetails(unittest.TestCase):

    def test_prefers_login_key(self):
        details = logon_details(SessionState(username='alice', password='hunter2', login_key='key'))
        self.assertEqual(details.login_key, 'key')
        self.assertEqual(details.password, '')

    def test_password(self):
        details = logon_details(SessionState(username='alice', password='hunter2'))
        self.assertEqual(details.username, 'alice')
        self.assertEqual(details.password, 'hunter2')
        self.assertEqual(details.login_key, '')

    def test_email_code(self):
        details = logon_details(SessionState(username='alice', password='hunter2'), '4D6XG')
        self.assertEqual(details.auth_code, '4D6XG')
        self.assertEqual(details.two_factor_code, '')

    def test_two_factor_code(self):
        session = SessionState(username='alice', password='hunter2', code_type=CodeType.TWO_FACTOR.value)
        details = logon_details(session, '52JK9')
        self.assertEqual(details.two_factor_code, '52JK9')
        self.assertEqual(details.auth_code, '')


class TestLogon(TranslatorTestCase):

    def test_success(self):
        """A successful logon should persist the identity and go online."""
        translator = self.make_translator(EResult.OK)
        session = self.login(translator)

        self.assertTrue(session.connected)
        self.assertTrue(session.authenticated)
        self.assertFalse(session.needs_code)
        self.assertEqual(session.steam_id, STEAM_ID)
        self.assertEqual(session.last_error, '')
        self.assertEqual(session.last_result, EResult.OK)
        self.assertEqual(translator.phase, SessionPhase.AUTHENTICATED)
        self.assertEqual(translator.wait_logon(0), EResult.OK)
        self.assertEqual(self.client.logons[0].password, 'hunter2')
        self.assertEqual(self.client.persona_states, [PersonaState.ONLINE])
        self.assertEqual(rate_limit_store().load().last_attempt, self.clock.now)

    def test_wrong_password(self):
        """An invalid password should be recorded as a failure without asking for a code."""
        translator = self.make_translator(EResult.INVALID_PASSWORD)
        session = self.login(translator, password='wrong')

        self.assertFalse(session.authenticated)
        self.assertFalse(session.needs_code)
        self.assertEqual(session.last_error, 'Authentication failed: INVALID_PASSWORD')
        self.assertEqual(session.last_result, EResult.INVALID_PASSWORD)
        self.assertEqual(session.phase, SessionPhase.FAILED)
        self.assertEqual(translator.phase, SessionPhase.FAILED)
        self.assertEqual(rate_limit_store().load().consecutive_fails, 1)

    def test_remote_rate_limit(self):
        translator = self.make_translator(EResult.RATE_LIMIT_EXCEEDED)
        self.login(translator)
        self.assertTrue(self.governor.check().blocked)

    def test_login_key_replaces_password(self):
        """Once a remembered-login key arrives the password should no longer be stored."""
        translator = self.make_translator(EResult.OK)
        self.login(translator)
        translator.handle_event(LoginKey('remembered'))

        session = self.store.load()
        self.assertEqual(session.login_key, 'remembered')
        self.assertEqual(session.password, '')
        self.assertTrue(session.can_resume)

    def test_revoked_login_key_is_cleared(self):
        """A rejected remembered-login key should be dropped so the operator logs in again."""
        self.store.save(SessionState(username='alice', login_key='revoked', steam_id=STEAM_ID))
        translator = self.make_translator(EResult.INVALID_PASSWORD)
        translator.connect()
        pump(self.client, translator)

        self.assertEqual(self.client.logons[0].login_key, 'revoked')
        session = self.store.load()
        self.assertEqual(session.login_key, '')
        self.assertFalse(session.can_resume)

    def test_no_auto_login(self):
        translator = self.make_translator(auto_login=False)
        self.login(translator)
        self.assertEqual(self.client.logons, [])
        self.assertEqual(translator.phase, SessionPhase.CONNECTED)
        self.assertTrue(translator.wait_connected(0))

    def test_no_credentials(self):
        translator = self.make_translator()
        translator.connect()
        with self.assertLogs('steam_cli.session', level='WARNING'):
            pump(self.client, translator)
        self.assertEqual(self.client.logons, [])
        self.assertTrue(self.store.load().connected)


class TestGuardCode(TranslatorTestCase):

    def test_email_code_flow(self):
        """A denied logon should wait for a code on a fresh connection, then log on with it."""
        translator = self.make_translator(EResult.ACCOUNT_LOGON_DENIED, EResult.OK)
        session = self.login(translator)

        self.assertTrue(session.needs_code)
        self.assertFalse(session.authenticated)
        self.assertEqual(session.code_type, CodeType.EMAIL)
        self.assertEqual(session.last_error, 'Authentication failed: ACCOUNT_LOGON_DENIED')
        self.assertEqual(translator.phase, SessionPhase.AWAITING_GUARD_CODE)

        # The remote drops the connection after the denial
        self.client.disconnect()
        pump(self.client, translator)
        self.assertEqual(self.client.connect_calls, 2)
        self.assertEqual(len(self.client.logons), 1)
        session = self.store.load()
        self.assertTrue(session.connected)
        self.assertTrue(session.needs_code)

        translator.log_on(logon_details(session, '4D6XG'))
        pump(self.client, translator)

        self.assertEqual(self.client.logons[1].auth_code, '4D6XG')
        self.assertEqual(self.client.logons[1].password, 'hunter2')
        session = self.store.load()
        self.assertTrue(session.authenticated)
        self.assertFalse(session.needs_code)
        self.assertEqual(session.steam_id, STEAM_ID)

    def test_two_factor(self):
        translator = self.make_translator(EResult.ACCOUNT_LOGIN_DENIED_NEED_TWO_FACTOR)
        session = self.login(translator)
        self.assertTrue(session.needs_code)
        self.assertEqual(session.code_type, CodeType.TWO_FACTOR)

    def test_invalid_code_keeps_waiting(self):
        translator = self.make_translator(EResult.INVALID_LOGIN_AUTH_CODE)
        session = self.login(translator)
        self.assertTrue(session.needs_code)
        self.assertEqual(session.last_result, EResult.INVALID_LOGIN_AUTH_CODE)

    def test_stopped_translator_does_not_reconnect(self):
        translator = self.make_translator(EResult.ACCOUNT_LOGON_DENIED, guard_reconnect_delay=5)
        self.login(translator)
        translator.stop()
        translator.handle_event(Disconnected())
        self.assertEqual(self.client.connect_calls, 1)


class TestDisconnect(TranslatorTestCase):

    def test_disconnect_persisted(self):
        translator = self.make_translator(EResult.OK)
        self.login(translator)
        with patch.object(translator, 'on_disconnected') as on_disconnected:
            self.client.disconnect()
            pump(self.client, translator)
        on_disconnected.assert_called_once_with()

        session = self.store.load()
        self.assertFalse(session.connected)
        self.assertFalse(session.authenticated)
        self.assertEqual(session.steam_id, STEAM_ID)
        self.assertEqual(translator.phase, SessionPhase.DISCONNECTED)

    def test_disconnect_ends_pending_logon(self):
        """A logon interrupted by a disconnect should stop waiting without a result."""
        translator = self.make_translator()
        self.client.respond = False
        self.login(translator)
        self.assertEqual(translator.phase, SessionPhase.AUTHENTICATING)

        self.client.disconnect()
        pump(self.client, translator)

        start = time.monotonic()
        self.assertIsNone(translator.wait_logon(5))
        self.assertLess(time.monotonic() - start, 1)
        self.assertEqual(translator.phase, SessionPhase.DISCONNECTED)


class TestChatMessages(TranslatorTestCase):

    def test_dropped_before_logon(self):
        translator = self.make_translator()
        translator.handle_event(ChatMessage(FRIEND_ID, 'hello'))
        self.assertEqual(self.received, [])

    def test_forwarded_when_authenticated(self):
        translator = self.make_translator(EResult.OK)
        self.login(translator)
        translator.handle_event(ChatMessage(FRIEND_ID, 'hello'))
        self.assertEqual(self.received, [(FRIEND_ID, 'hello')])


class TestEventLoop(TranslatorTestCase):

    def test_threaded_logon(self):
        translator = self.make_translator(EResult.OK)
        self.store.save(SessionState(username='alice', password='hunter2'))
        translator.start()
        self.addCleanup(translator.stop)
        self.addCleanup(self.client.close)

        translator.connect(password='hunter2')
        self.assertTrue(translator.wait_connected(5))
        self.assertEqual(translator.wait_logon(5), EResult.OK)
        self.assertTrue(self.store.load().authenticated)

    def test_start_twice(self):
        translator = self.make_translator()
        translator.start()
        self.addCleanup(translator.stop)
        self.addCleanup(self.client.close)
        with self.assertRaises(RuntimeError):
            translator.start()

    def test_handler_errors_are_logged(self):
        """A failing handler should not end the loop."""
        translator = self.make_translator()
        with patch.object(self.store, 'update', side_effect=OSError('disk full')):
            with self.assertLogs('steam_cli.session', level='ERROR'):
                translator.handle_event(Disconnected())

    def test_unknown_event(self):
        translator = self.make_translator()
        translator.handle_event(object())
        self.assertEqual(self.store.load(), SessionState())


if __name__ == '__main__':
    unittest.main()
