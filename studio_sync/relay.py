"""
Message relay between the control surface (CLI / HTTP) and the pipeline.
消息转发：控制端（CLI / HTTP）与提取、上传流程之间。

Each request kind maps to one handler. Known kinds run on a worker thread
and answer exactly once through the responder; handle() returns True to
tell the transport a response is pending. Unknown kinds return False and
are never answered.
"""
import http.server
import json
import sys
import threading

from studio_sync.config import load_feishu_config
from studio_sync.extract import extract_conversation
from studio_sync.models import Transcript
from studio_sync.sync import run_sync

EXTRACT_DATA = "EXTRACT_DATA"
GET_CONVERSATION_DATA = "GET_CONVERSATION_DATA"
UPLOAD_TO_FEISHU = "UPLOAD_TO_FEISHU"
UPLOAD_KINDS = (UPLOAD_TO_FEISHU,)


def _single_shot(send_response):
    lock = threading.Lock()
    sent = []

    def respond(payload):
        with lock:
            if sent:
                return
            sent.append(True)
        send_response(payload)
    return respond


def _error_response(kind, exc):
    message = str(exc) or "unknown error"
    if kind in UPLOAD_KINDS:
        return {"ok": False, "error": message}
    resp = Transcript().to_dict()
    resp["error"] = message
    return resp


class Relay:
    def __init__(self, handlers):
        self.handlers = dict(handlers)

    @property
    def kinds(self):
        return sorted(self.handlers)

    def handle(self, message, send_response):
        """Dispatch a message. Returns True when a response will follow."""
        kind = message.get("type") if isinstance(message, dict) else None
        handler = self.handlers.get(kind)
        if handler is None:
            print(f"[Relay/转发] Ignoring message type {kind!r} / 忽略未知消息")
            return False
        respond = _single_shot(send_response)
        worker = threading.Thread(
            target=self._run, args=(kind, handler, message, respond), daemon=True,
        )
        worker.start()
        return True

    def _run(self, kind, handler, message, respond):
        try:
            result = handler(message)
        except Exception as e:
            print(f"[Relay/转发] ❌ {kind} failed / 处理失败: {e!r}")
            result = _error_response(kind, e)
        respond(result)

    def request(self, message, timeout=None):
        """Send a message and block for its response. None for unknown kinds."""
        box = {}
        done = threading.Event()

        def receive(payload):
            box["response"] = payload
            done.set()

        if not self.handle(message, receive):
            return None
        done.wait(timeout)
        return box.get("response")


def default_handlers(extract=extract_conversation, sync=run_sync, load_config=load_feishu_config):
    """Handlers wired to the live extractor and uploader; config is read per call."""

    def on_extract(message):
        return extract(reveal=True, dwell=load_config().dwell).to_dict()

    def on_read(message):
        return extract(reveal=False, dwell=load_config().dwell).to_dict()

    def on_upload(message):
        transcript = Transcript.from_dict(message.get("data"))
        return sync(load_config(), transcript).to_dict()

    return {
        EXTRACT_DATA: on_extract,
        GET_CONVERSATION_DATA: on_read,
        UPLOAD_TO_FEISHU: on_upload,
    }


# ============================================================
# HTTP transport
# ============================================================

def make_http_handler(relay):
    class RelayHandler(http.server.BaseHTTPRequestHandler):
        def do_GET(self):
            self._ok({
                "service": "studio-sync",
                "endpoints": ["POST /message  {type, data?}"],
                "message_types": relay.kinds,
            })

        def do_POST(self):
            if self.path.rstrip("/") != "/message":
                self._ok({"error": f"unknown endpoint: {self.path}"}, status=404)
                return
            try:
                length = int(self.headers.get("Content-Length", 0))
            except ValueError:
                self._ok({"error": "invalid Content-Length"}, status=400)
                return
            try:
                message = json.loads(self.rfile.read(length)) if length > 0 else {}
            except ValueError:
                self._ok({"error": "invalid JSON body"}, status=400)
                return
            response = relay.request(message)
            if response is None:
                self._ok({"error": "unknown message type"}, status=400)
            else:
                self._ok(response)

        def _ok(self, data, status=200):
            body = json.dumps(data, ensure_ascii=False, indent=2).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, fmt, *args):
            sys.stderr.write(f"[HTTP] {args[0] if args else ''}\n")

    return RelayHandler


def serve_http(relay, host="127.0.0.1", port=8900):
    server = http.server.ThreadingHTTPServer((host, port), make_http_handler(relay))
    print(f"[HTTP] Studio sync relay: http://{host}:{port}/message")
    server.serve_forever()
