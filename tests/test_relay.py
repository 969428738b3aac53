import http.client
import json
import threading
import urllib.error
import urllib.request

import pytest

from studio_sync.models import FeishuConfig, Outcome, Transcript, Turn
from studio_sync.relay import (
    EXTRACT_DATA, GET_CONVERSATION_DATA, UPLOAD_TO_FEISHU,
    Relay, default_handlers, make_http_handler,
)


class Recorder:
    def __init__(self):
        self.responses = []
        self.done = threading.Event()

    def __call__(self, payload):
        self.responses.append(payload)
        self.done.set()


def test_known_kind_signals_pending_and_responds_once():
    relay = Relay({"PING": lambda message: {"pong": message["n"]}})
    rec = Recorder()

    assert relay.handle({"type": "PING", "n": 3}, rec) is True
    assert rec.done.wait(5)
    assert rec.responses == [{"pong": 3}]


def test_unknown_kind_declines():
    relay = Relay({"PING": lambda message: {}})
    rec = Recorder()

    assert relay.handle({"type": "NOPE"}, rec) is False
    assert relay.handle("not a dict", rec) is False
    assert relay.request({"type": "NOPE"}) is None
    assert rec.responses == []


def test_request_forwards_handler_result_verbatim():
    result = {"ok": False, "error": "upload failed"}
    relay = Relay({UPLOAD_TO_FEISHU: lambda message: result})
    assert relay.request({"type": UPLOAD_TO_FEISHU}, timeout=5) == result


def test_handler_exception_becomes_error_response():
    def boom(message):
        raise RuntimeError("tab closed")

    relay = Relay({UPLOAD_TO_FEISHU: boom, EXTRACT_DATA: boom})

    assert relay.request({"type": UPLOAD_TO_FEISHU}, timeout=5) == {"ok": False, "error": "tab closed"}
    resp = relay.request({"type": EXTRACT_DATA}, timeout=5)
    assert resp["turns"] == []
    assert resp["error"] == "tab closed"


def test_default_handlers_route_to_extractor_and_sync():
    calls = []
    config = FeishuConfig("cli_a", "secret", "space_9", dwell=0.25)

    def fake_extract(reveal, dwell):
        calls.append(("extract", reveal, dwell))
        return Transcript(title="Chat", turns=[Turn("user", "hi")], extracted_at=1)

    def fake_sync(conf, transcript):
        calls.append(("sync", conf, transcript.turns))
        return Outcome(ok=True)

    relay = Relay(default_handlers(extract=fake_extract, sync=fake_sync, load_config=lambda: config))

    data = relay.request({"type": EXTRACT_DATA}, timeout=5)
    assert data == {"title": "Chat", "turns": [{"role": "user", "content": "hi"}], "timestamp": 1}
    relay.request({"type": GET_CONVERSATION_DATA}, timeout=5)
    outcome = relay.request({"type": UPLOAD_TO_FEISHU, "data": data}, timeout=5)

    assert outcome == {"ok": True}
    assert calls == [
        ("extract", True, 0.25),
        ("extract", False, 0.25),
        ("sync", config, [Turn("user", "hi")]),
    ]


@pytest.fixture
def http_relay():
    import http.server

    relay = Relay({"ECHO": lambda message: {"echo": message.get("data")}})
    server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), make_http_handler(relay))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def _post(url, body):
    req = urllib.request.Request(url, data=json.dumps(body).encode("utf-8"), method="POST",
                                 headers={"Content-Type": "application/json"})
    try:
        with urllib.request.urlopen(req, timeout=5) as resp:
            return resp.status, json.loads(resp.read())
    except urllib.error.HTTPError as e:
        return e.code, json.loads(e.read())


def test_http_transport(http_relay):
    assert _post(http_relay + "/message", {"type": "ECHO", "data": "中文"}) == (200, {"echo": "中文"})

    status, body = _post(http_relay + "/message", {"type": "NOPE"})
    assert status == 400 and body == {"error": "unknown message type"}

    with urllib.request.urlopen(http_relay + "/", timeout=5) as resp:
        assert json.loads(resp.read())["message_types"] == ["ECHO"]


def test_http_malformed_content_length(http_relay):
    host, port = http_relay[len("http://"):].split(":")
    conn = http.client.HTTPConnection(host, int(port), timeout=5)
    try:
        conn.putrequest("POST", "/message")
        conn.putheader("Content-Type", "application/json")
        conn.putheader("Content-Length", "twelve")
        conn.endheaders()
        resp = conn.getresponse()
        assert resp.status == 400
        assert json.loads(resp.read()) == {"error": "invalid Content-Length"}
    finally:
        conn.close()
