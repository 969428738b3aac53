"""
CDP (Chrome DevTools Protocol) communication primitives.
CDP 通信原语：发送命令、执行 JS、查找标签页。
"""
import itertools
import json
import urllib.request

from studio_sync.config import CDP_PORT, STUDIO_HOST

_cdp_ids = itertools.count(1)


class CdpError(RuntimeError):
    """Raised when a CDP command fails or page JavaScript throws."""


# ============================================================
# Low-level CDP communication
# ============================================================

def cdp(ws, method, params=None):
    """Send a CDP command and wait for its response."""
    msg_id = next(_cdp_ids)
    ws.send(json.dumps({"id": msg_id, "method": method, "params": params or {}}))
    while True:
        resp = json.loads(ws.recv())
        if resp.get("id") != msg_id:
            continue
        if "error" in resp:
            raise CdpError(f"{method}: {resp['error'].get('message', resp['error'])}")
        return resp.get("result", {})


def js(ws, expr, await_promise=False):
    """Execute JavaScript in the page and return the result value."""
    r = cdp(ws, "Runtime.evaluate", {
        "expression": expr,
        "returnByValue": True,
        "awaitPromise": await_promise,
    })
    if "exceptionDetails" in r:
        details = r["exceptionDetails"]
        text = details.get("exception", {}).get("description") or details.get("text", "")
        raise CdpError(f"JS exception: {text}")
    val = r.get("result", {})
    if val.get("type") == "undefined":
        return None
    return val.get("value")


# ============================================================
# Tab management
# ============================================================

def get_tabs(port=CDP_PORT):
    """List all Chrome tabs via CDP HTTP API."""
    try:
        data = urllib.request.urlopen(f"http://127.0.0.1:{port}/json", timeout=5).read()
        return json.loads(data)
    except (OSError, ValueError):
        return []


def find_tab(url_fragment=STUDIO_HOST, port=CDP_PORT):
    """Find a page tab whose URL contains the fragment. Returns WebSocket URL or None."""
    for t in get_tabs(port):
        if t.get("type") == "page" and url_fragment in t.get("url", ""):
            return t.get("webSocketDebuggerUrl")
    return None

