import datetime
import unittest

from client.dispatch import MessageDispatcher
from client.net import ConnectionManager
from client.render import Classification, Presenter, RosterEntry
from client.state import ConnectionState
from common.messages import Credential
from tests.fakes import FakeClock, FakeFactory, FakeView, pump_until

UTC = datetime.timezone.utc
TS = 1699300000000


class DispatcherTestCase(unittest.TestCase):
    def setUp(self):
        self.factory = FakeFactory()
        self.clock = FakeClock()
        self.net = ConnectionManager("ws://chat.test/chat", transport_factory=self.factory,
                                     auth_timeout=10.0, clock=self.clock)
        self.view = FakeView()
        self.presenter = Presenter(self.view, tz=UTC)
        self.dispatcher = MessageDispatcher(self.net, self.presenter)
        self.addCleanup(self.net.close)

    def start(self, username="alice", password="x", mode="login"):
        self.net.connect(Credential(username, password), mode)
        pump_until(self.net, lambda: self.net.state is ConnectionState.AUTHENTICATING)
        return self.factory.last

    def login(self, username="alice"):
        transport = self.start(username)
        transport.feed({"type": "login", "status": "success"})
        pump_until(self.net, lambda: self.net.state is ConnectionState.AUTHENTICATED)
        return transport


class LoginScenarioTests(DispatcherTestCase):
    def test_login_success_reveals_chat(self):
        transport = self.start("alice", "x")
        self.assertEqual(transport.sent_json(), [{"type": "login", "username": "alice", "password": "x"}])
        transport.feed({"type": "login", "status": "success"})
        pump_until(self.net, lambda: self.view.current == "chat")
        self.assertEqual(self.net.session.identity, "alice")
        self.assertEqual(self.view.identity, "alice")
        self.assertIs(self.net.state, ConnectionState.AUTHENTICATED)

    def test_login_failure_alerts_and_closes(self):
        transport = self.start("alice", "wrong")
        transport.feed({"type": "login", "status": "failure", "message": "bad password"})
        pump_until(self.net, lambda: self.net.state is ConnectionState.CLOSED)
        self.assertEqual(self.view.alerts, [("Error", "bad password")])
        self.assertTrue(transport.closed)
        self.assertEqual(self.view.current, "login")
        self.assertIsNone(self.net.session.identity)

    def test_login_failure_without_message(self):
        transport = self.start()
        transport.feed({"type": "login", "status": "failure"})
        pump_until(self.net, lambda: self.net.state is ConnectionState.CLOSED)
        self.assertEqual(self.view.alerts, [("Error", "Login failed.")])

    def test_register_success_goes_to_login_form(self):
        transport = self.start("dave", "pw", mode="register")
        self.assertEqual(transport.sent_json()[0]["type"], "register")
        transport.feed({"type": "register", "status": "success"})
        pump_until(self.net, lambda: self.net.state is ConnectionState.DISCONNECTED)
        self.assertTrue(transport.closed)
        self.assertEqual(self.view.current, "login")
        self.assertIn("Please log in", self.view.notice)
        self.assertIsNone(self.net.session.identity)

    def test_register_failure_stays_on_register_form(self):
        transport = self.start("dave", "pw", mode="register")
        transport.feed({"type": "register", "status": "failure", "message": "name taken"})
        pump_until(self.net, lambda: bool(self.view.alerts))
        self.assertEqual(self.view.alerts, [("Error", "name taken")])
        self.assertEqual(self.view.current, "register")
        self.assertFalse(transport.closed)
        # no pending request any more, so the deadline does not fire
        self.clock.now += 60
        self.net.poll()
        self.assertIs(self.net.state, ConnectionState.AUTHENTICATING)

    def test_idle_close_after_register_failure_is_silent(self):
        transport = self.start("dave", "pw", mode="register")
        transport.feed({"type": "register", "status": "failure", "message": "name taken"})
        pump_until(self.net, lambda: bool(self.view.alerts))
        transport.drop()
        pump_until(self.net, lambda: self.net.state is ConnectionState.CLOSED)
        self.assertEqual(self.view.alerts, [("Error", "name taken")])
        self.assertEqual(self.view.current, "register")

    def test_drop_while_awaiting_register_reply_alerts(self):
        transport = self.start("dave", "pw", mode="register")
        transport.drop()
        pump_until(self.net, lambda: self.net.state is ConnectionState.CLOSED)
        self.assertEqual(len(self.view.alerts), 1)
        self.assertIn("Connection failed", self.view.alerts[0][1])
        self.assertEqual(self.view.current, "register")

    def test_login_reply_after_authentication_is_ignored(self):
        transport = self.login()
        with self.assertLogs("client.dispatch", level="WARNING"):
            transport.feed({"type": "login", "status": "failure", "message": "late"})
            self.net.poll(wait=1.0)
        self.assertIs(self.net.state, ConnectionState.AUTHENTICATED)
        self.assertEqual(self.view.alerts, [])


class MessageScenarioTests(DispatcherTestCase):
    def setUp(self):
        super().setUp()
        self.transport = self.login("alice")

    def feed(self, frame):
        n = len(self.presenter.log)
        self.transport.feed(frame)
        self.net.poll(wait=1.0)
        return self.presenter.log[n:]

    def test_group_message_from_other(self):
        new = self.feed({"type": "message", "sender": "bob", "receiver": None,
                         "content": "hi", "timestamp": TS})
        self.assertEqual(len(new), 1)
        self.assertIs(new[0].kind, Classification.GROUP_RECEIVED)
        self.assertIn("bob: hi", new[0].text)

    def test_private_message_sent_by_self(self):
        new = self.feed({"type": "message", "sender": "alice", "receiver": "bob",
                         "content": "secret", "timestamp": TS})
        self.assertIs(new[0].kind, Classification.PRIVATE_SENT)
        self.assertIn("to bob", new[0].text)

    def test_nan_and_string_timestamps_are_dropped(self):
        for raw in ('{"type":"message","sender":"bob","receiver":null,"content":"x","timestamp":NaN}',
                    '{"type":"message","sender":"bob","receiver":null,"content":"x","timestamp":"abc"}'):
            with self.subTest(raw=raw):
                with self.assertLogs("client.dispatch", level="ERROR"):
                    self.assertEqual(self.feed(raw), [])
        self.assertEqual(self.view.lines, [])
        self.assertEqual(self.view.alerts, [])

    def test_oversized_timestamp_does_not_stop_later_frames(self):
        bad = '{"type":"message","sender":"bob","receiver":null,"content":"x","timestamp":' + "9" * 400 + "}"
        with self.assertLogs("client.dispatch", level="ERROR"):
            self.transport.feed(bad)
            self.transport.feed({"type": "message", "sender": "bob", "receiver": None,
                                 "content": "still here", "timestamp": TS})
            pump_until(self.net, lambda: len(self.presenter.log) == 1)
        self.assertIn("bob: still here", self.presenter.log[0].text)
        self.assertIs(self.net.state, ConnectionState.AUTHENTICATED)

    def test_roster_update(self):
        self.feed({"type": "userList", "users": {"bob": "online", "carol": "offline", "alice": "online"}})
        self.assertEqual(self.view.roster, [RosterEntry("bob", True, False),
                                            RosterEntry("carol", False, False)])

    def test_status_update_replaces_whole_roster(self):
        self.feed({"type": "userList", "users": {"bob": "online", "carol": "offline"}})
        self.feed({"type": "userStatusUpdate", "users": {"bob": "offline"}})
        self.assertEqual(self.view.roster, [RosterEntry("bob", False, False)])
        self.assertEqual(list(self.net.session.roster), ["bob"])

    def test_roster_without_users_object_is_dropped(self):
        self.feed({"type": "userList", "users": {"bob": "online"}})
        with self.assertLogs("client.dispatch", level="WARNING"):
            self.feed({"type": "userList", "users": ["carol"]})
        self.assertEqual(list(self.net.session.roster), ["bob"])

    def test_history_clears_then_renders_in_order(self):
        self.feed({"type": "message", "sender": "bob", "receiver": None, "content": "live", "timestamp": TS})
        self.feed({"type": "history", "messages": [
            {"type": "message", "sender": "bob", "receiver": None, "content": "m1", "timestamp": TS},
            {"type": "message", "sender": "carol", "receiver": "alice", "content": "m2", "timestamp": TS + 1},
        ]})
        self.assertEqual([text.split("] ", 1)[1] for text, _ in self.view.lines],
                         ["bob: m1", "carol whispers to you: m2"])

    def test_history_skips_invalid_entries(self):
        with self.assertLogs("client.dispatch", level="ERROR"):
            self.feed({"type": "history", "messages": [
                {"sender": "bob", "receiver": None, "content": "ok", "timestamp": TS},
                {"sender": "bob", "receiver": None, "content": "bad", "timestamp": "abc"},
            ]})
        self.assertEqual(len(self.view.lines), 1)

    def test_error_envelope_alerts_without_state_change(self):
        self.feed({"type": "error", "message": "user carol is offline"})
        self.assertEqual(self.view.alerts, [("Error", "user carol is offline")])
        self.assertIs(self.net.state, ConnectionState.AUTHENTICATED)

    def test_unknown_type_is_ignored(self):
        with self.assertLogs("client.dispatch", level="INFO") as cm:
            self.feed({"type": "fileList", "files": []})
        self.assertIn("fileList", cm.output[0])
        self.assertEqual(self.view.alerts, [])
        self.assertIs(self.net.state, ConnectionState.AUTHENTICATED)

    def test_malformed_frame_keeps_connection_open(self):
        with self.assertLogs("client.net", level="WARNING"):
            self.feed("{not json")
        self.assertIs(self.net.state, ConnectionState.AUTHENTICATED)
        new = self.feed({"type": "message", "sender": "bob", "receiver": None, "content": "still here",
                         "timestamp": TS})
        self.assertEqual(len(new), 1)

    def test_remote_close_reverts_to_login(self):
        self.feed({"type": "userList", "users": {"bob": "online"}})
        self.transport.drop()
        pump_until(self.net, lambda: self.net.state is ConnectionState.CLOSED)
        self.assertEqual(self.view.current, "login")
        self.assertEqual(self.view.notice, "Disconnected from server.")
        self.assertEqual(self.view.roster, [])
        self.assertIsNone(self.net.session.identity)
        self.assertEqual(self.net.session.roster, {})


class TimeoutAndFailureTests(DispatcherTestCase):
    def test_auth_timeout_closes_and_alerts(self):
        transport = self.start()
        self.clock.now += 9.9
        self.net.poll()
        self.assertIs(self.net.state, ConnectionState.AUTHENTICATING)
        self.clock.now += 0.2
        self.net.poll()
        self.assertIs(self.net.state, ConnectionState.CLOSED)
        self.assertTrue(transport.closed)
        self.assertEqual(self.view.alerts, [("Error", "No response from server.")])
        self.assertEqual(self.view.current, "login")

    def test_connect_failure_alerts(self):
        self.factory.error = ConnectionRefusedError("refused")
        self.net.connect(Credential("alice", "x"), "register")
        pump_until(self.net, lambda: self.net.state is ConnectionState.CLOSED)
        self.assertEqual(len(self.view.alerts), 1)
        self.assertIn("refused", self.view.alerts[0][1])
        self.assertEqual(self.view.current, "register")


if __name__ == "__main__":
    unittest.main()
