"""
Unit tests for ConversationBridge: retry, completion signals, reply assembly.
Uses scripted in-memory exchanges; no network.
"""
import json
import unittest

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from conversation.bridge import BridgeSettings, ConversationBridge, RobotExchange, append_token


class FakeExchange:
    """Replays a script of inbound messages; exceptions in the script are raised."""

    def __init__(self, script):
        self.script = list(script)
        self.sent = []
        self.closed = False
        self.recv_calls = 0

    def send(self, message):
        self.sent.append(message)

    def close(self):
        self.closed = True

    def recv(self, timeout=None):
        self.recv_calls += 1
        if not self.script:
            raise TimeoutError()
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnector:
    def __init__(self, *scripts, error=None):
        self.scripts = list(scripts)
        self.error = error
        self.urls = []
        self.exchanges = []

    def __call__(self, url):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        exchange = FakeExchange(self.scripts.pop(0) if self.scripts else [])
        self.exchanges.append(exchange)
        return exchange


def _settings(**kwargs):
    defaults = dict(ws_url="ws://robot.local/ws", persona_id="p-1", timeout_seconds=5.0)
    defaults.update(kwargs)
    return BridgeSettings(**defaults)


def _closed_ok():
    return ConnectionClosedOK(Close(1000, "bye"), None)


class TestBridgePreconditions(unittest.TestCase):
    def test_blank_token_makes_no_call(self):
        connect = FakeConnector()
        bridge = ConversationBridge(_settings(), connect=connect)
        self.assertIsNone(bridge.send_and_receive("你好", ""))
        self.assertIsNone(bridge.send_and_receive("你好", "   "))
        self.assertIsNone(bridge.send_and_receive("你好", None))
        self.assertEqual(connect.urls, [])

    def test_blank_text_makes_no_call(self):
        connect = FakeConnector()
        bridge = ConversationBridge(_settings(), connect=connect)
        self.assertIsNone(bridge.send_and_receive("  ", "tok"))
        self.assertEqual(connect.urls, [])


class TestBridgeExchange(unittest.TestCase):
    def test_chunks_then_done(self):
        connect = FakeConnector([
            json.dumps({"type": "chunk", "content": "A"}),
            json.dumps({"type": "chunk", "content": "B"}),
            json.dumps({"type": "chunk", "content": "C"}),
            json.dumps({"type": "done"}),
        ])
        bridge = ConversationBridge(_settings(), connect=connect)
        self.assertEqual(bridge.send_and_receive("讲个故事", "tok"), "ABC")
        self.assertEqual(len(connect.urls), 1)
        self.assertTrue(connect.exchanges[0].closed)

    def test_request_payload_and_url(self):
        connect = FakeConnector([json.dumps({"text": "ok"}), json.dumps({"done": True})])
        bridge = ConversationBridge(_settings(scene="chat", input_type="listening"), connect=connect)
        bridge.send_and_receive("你好", "tok-1")
        self.assertEqual(connect.urls, ["ws://robot.local/ws?token=tok-1"])
        sent = connect.exchanges[0].sent
        self.assertEqual(len(sent), 1)
        self.assertIn("你好", sent[0])
        self.assertEqual(
            json.loads(sent[0]),
            {"voice": "你好", "scene": "chat", "inputType": "listening", "token": "tok-1", "personaId": "p-1"},
        )

    def test_every_attempt_times_out(self):
        connect = FakeConnector([], [], [])
        bridge = ConversationBridge(_settings(), connect=connect)
        self.assertIsNone(bridge.send_and_receive("你好", "tok"))
        self.assertEqual(len(connect.urls), 3)

    def test_zero_deadline_times_out_without_receiving(self):
        connect = FakeConnector()
        bridge = ConversationBridge(_settings(timeout_seconds=0), connect=connect)
        self.assertIsNone(bridge.send_and_receive("你好", "tok"))
        self.assertEqual(len(connect.urls), 3)
        self.assertTrue(all(e.recv_calls == 0 for e in connect.exchanges))

    def test_connect_failure_retried_then_absent(self):
        connect = FakeConnector(error=OSError("connection refused"))
        bridge = ConversationBridge(_settings(max_attempts=2), connect=connect)
        self.assertIsNone(bridge.send_and_receive("你好", "tok"))
        self.assertEqual(len(connect.urls), 2)

    def test_retry_starts_fresh_exchange(self):
        connect = FakeConnector(
            [json.dumps({"type": "chunk", "content": "lost"})],
            [json.dumps({"type": "chunk", "content": "B"}), json.dumps({"type": "done"})],
        )
        bridge = ConversationBridge(_settings(), connect=connect)
        self.assertEqual(bridge.send_and_receive("你好", "tok"), "B")
        self.assertEqual(len(connect.urls), 2)

    def test_close_frame_completes_with_last_text(self):
        connect = FakeConnector([json.dumps({"text": "hello"}), _closed_ok()])
        bridge = ConversationBridge(_settings(), connect=connect)
        self.assertEqual(bridge.send_and_receive("hi", "tok"), "hello")
        self.assertEqual(len(connect.urls), 1)

    def test_abnormal_drop_is_retried(self):
        connect = FakeConnector(
            [ConnectionClosedError(None, None)],
            [json.dumps({"text": "second"}), json.dumps({"type": "done"})],
        )
        bridge = ConversationBridge(_settings(), connect=connect)
        self.assertEqual(bridge.send_and_receive("hi", "tok"), "second")
        self.assertEqual(len(connect.urls), 2)

    def test_handshake_ignored(self):
        connect = FakeConnector([
            json.dumps({"message": "connected"}),
            json.dumps({"message": "你好呀"}),
            json.dumps({"type": "done"}),
        ])
        bridge = ConversationBridge(_settings(), connect=connect)
        self.assertEqual(bridge.send_and_receive("hi", "tok"), "你好呀")

    def test_raw_text_fallback(self):
        connect = FakeConnector(["plain reply", _closed_ok()])
        bridge = ConversationBridge(_settings(), connect=connect)
        self.assertEqual(bridge.send_and_receive("hi", "tok"), "plain reply")

    def test_done_without_text_returns_none_after_one_attempt(self):
        connect = FakeConnector([json.dumps({"type": "done"})])
        bridge = ConversationBridge(_settings(), connect=connect)
        self.assertIsNone(bridge.send_and_receive("hi", "tok"))
        self.assertEqual(len(connect.urls), 1)

    def test_exchange_closed_after_each_attempt(self):
        closed = []

        class ClosingExchange(FakeExchange):
            def close(self):
                closed.append(self)

        exchanges = [ClosingExchange([]), ClosingExchange([json.dumps({"text": "x"}), json.dumps({"done": True})])]
        bridge = ConversationBridge(_settings(), connect=lambda url: exchanges.pop(0))
        self.assertEqual(bridge.send_and_receive("hi", "tok"), "x")
        self.assertEqual(len(closed), 2)

    def test_close_failure_not_propagated(self):
        class BadClose(FakeExchange):
            def close(self):
                raise OSError("already closed")

        bridge = ConversationBridge(
            _settings(),
            connect=lambda url: BadClose([json.dumps({"text": "x"}), json.dumps({"done": True})]),
        )
        self.assertEqual(bridge.send_and_receive("hi", "tok"), "x")


class TestRobotExchange(unittest.TestCase):
    def _exchange(self):
        return RobotExchange(request_text="hi", token="t", persona="p", scene="chat", input_type="listening")

    def test_chunks_supersede_single_shot_text_on_done(self):
        ex = self._exchange()
        ex.consume(json.dumps({"type": "chunk", "content": "A"}))
        ex.consume(json.dumps({"text": "summary"}))
        self.assertEqual(ex.reply, "summary")
        self.assertTrue(ex.consume(json.dumps({"type": "done"})))
        self.assertEqual(ex.reply, "A")

    def test_bytes_message(self):
        ex = self._exchange()
        ex.consume(json.dumps({"text": "字节"}, ensure_ascii=False).encode("utf-8"))
        self.assertEqual(ex.reply, "字节")

    def test_malformed_json_uses_raw_text(self):
        ex = self._exchange()
        self.assertFalse(ex.consume("{not json"))
        self.assertEqual(ex.reply, "{not json")


class TestAppendToken(unittest.TestCase):
    def test_append_to_existing_query(self):
        self.assertEqual(append_token("ws://h/ws?a=1", "t"), "ws://h/ws?a=1&token=t")

    def test_blank_token_leaves_url(self):
        self.assertEqual(append_token("ws://h/ws", ""), "ws://h/ws")


if __name__ == "__main__":
    unittest.main()
