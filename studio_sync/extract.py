"""
AI Studio conversation extractor.
AI Studio 对话提取。

AI Studio renders each turn read-only; the raw text only shows up in the
`data-value` attribute of the turn's textarea once its "Edit" control has
been clicked. The extractor walks the Edit controls one at a time:
locate → activate → read → restore.
"""
import json
import threading
import time

from studio_sync.cdp import CdpError, find_tab, js
from studio_sync.chrome import is_cdp_alive, launch_chrome
from studio_sync.config import DEFAULT_DWELL, STUDIO_HOST, STUDIO_URL
from studio_sync.models import DEFAULT_TITLE, Transcript, Turn, normalize_role

REVEAL_SELECTOR = 'button[aria-label="Edit"]'
TURN_SELECTOR = "ms-chat-turn"
ROLE_ATTR = "data-turn-role"
TEXT_SELECTOR = "ms-autosize-textarea"
TEXT_ATTR = "data-value"
TITLE_SELECTOR = "h1.mode-title"
MARK_ATTR = "data-studio-sync-idx"

# Activating a control mutates shared page state; runs must not overlap.
_extract_lock = threading.Lock()


# ============================================================
# Page driver
# ============================================================

class StudioPage:
    """Thin JS layer over an AI Studio tab reached through CDP."""

    def __init__(self, ws):
        self.ws = ws

    def _control(self, index):
        selector = '[%s="%d"]' % (MARK_ATTR, index)
        return f"document.querySelector({json.dumps(selector)})"

    def mark_reveal_controls(self):
        """Tag every Edit control with its position. Returns the control count."""
        return js(self.ws, f"""
        (() => {{
            const controls = document.querySelectorAll({json.dumps(REVEAL_SELECTOR)});
            controls.forEach((b, i) => b.setAttribute({json.dumps(MARK_ATTR)}, String(i)));
            return controls.length;
        }})()
        """) or 0

    def unmark_reveal_controls(self):
        js(self.ws, f"""
        document.querySelectorAll('[{MARK_ATTR}]').forEach(b => b.removeAttribute({json.dumps(MARK_ATTR)}));
        """)

    def locate(self, index):
        return bool(js(self.ws, f"""
        (() => {{
            const b = {self._control(index)};
            if (!b) return false;
            b.scrollIntoView({{block: 'start'}});
            return true;
        }})()
        """))

    def activate(self, index):
        return bool(js(self.ws, f"""
        (() => {{
            const b = {self._control(index)};
            if (!b) return false;
            b.click();
            return true;
        }})()
        """))

    # Second click on the same control collapses the turn again.
    restore = activate

    def is_revealed(self, index):
        return bool(js(self.ws, f"""
        (() => {{
            const b = {self._control(index)};
            const c = b && b.closest({json.dumps(TURN_SELECTOR)});
            const t = c && c.querySelector({json.dumps(TEXT_SELECTOR)});
            return !!(t && t.hasAttribute({json.dumps(TEXT_ATTR)}));
        }})()
        """))

    def read(self, index):
        """Read {role, content} from the turn that holds control `index`, or None."""
        raw = js(self.ws, f"""
        (() => {{
            const b = {self._control(index)};
            const c = b && b.closest({json.dumps(TURN_SELECTOR)});
            if (!c) return null;
            const r = c.querySelector('[{ROLE_ATTR}]');
            const t = c.querySelector({json.dumps(TEXT_SELECTOR)});
            return JSON.stringify({{
                role: r ? r.getAttribute({json.dumps(ROLE_ATTR)}) : null,
                content: t ? (t.getAttribute({json.dumps(TEXT_ATTR)}) || '') : ''
            }});
        }})()
        """)
        return json.loads(raw) if raw else None

    def read_all(self):
        """Read every turn container as currently rendered, without clicking anything."""
        raw = js(self.ws, f"""
        (() => JSON.stringify(Array.from(document.querySelectorAll({json.dumps(TURN_SELECTOR)})).map(c => {{
            const r = c.querySelector('[{ROLE_ATTR}]');
            const t = c.querySelector({json.dumps(TEXT_SELECTOR)});
            return {{
                role: r ? r.getAttribute({json.dumps(ROLE_ATTR)}) : null,
                content: t ? (t.getAttribute({json.dumps(TEXT_ATTR)}) || '') : ''
            }};
        }})))()
        """)
        return json.loads(raw) if raw else []

    def title(self):
        return js(self.ws, f"""
        (() => {{
            const h = document.querySelector({json.dumps(TITLE_SELECTOR)});
            return h ? h.innerText.trim() : '';
        }})()
        """) or ""


# ============================================================
# Extractor
# ============================================================

def _to_turn(raw):
    """Turn from a raw {role, content} dict; None for unknown roles or blank text."""
    if not isinstance(raw, dict):
        return None
    role = normalize_role(raw.get("role"))
    content = raw.get("content")
    if not role or not isinstance(content, str) or not content.strip():
        return None
    return Turn(role, content.strip())


class ConversationExtractor:
    """
    Produce a Transcript from the page, one reveal control at a time.

    `dwell` bounds how long to wait after each click for the page to expose
    the turn text. The page gives no completion signal, so this is a
    best-effort poll of `page.is_revealed`, not a guarantee.
    """

    def __init__(self, page, dwell=DEFAULT_DWELL, poll_interval=0.1,
                 sleep=time.sleep, clock=time.monotonic):
        self.page = page
        self.dwell = dwell
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def extract(self, reveal=True):
        """Always returns a Transcript; zero turns means nothing could be read."""
        with _extract_lock:
            title = self._read_title()
            if reveal:
                turns = self._extract_revealed()
            else:
                turns = self._extract_passive()
        print(f"[Extract/提取] {len(turns)} turns extracted / 提取到 {len(turns)} 条对话")
        return Transcript(title=title, turns=turns)

    def settle(self, predicate=None):
        """Wait up to `dwell` seconds for predicate() to hold. Returns whether it did."""
        if predicate is None:
            self._sleep(self.dwell)
            return True
        deadline = self._clock() + self.dwell
        while True:
            try:
                if predicate():
                    return True
            except CdpError:
                pass
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            self._sleep(min(self.poll_interval, remaining))

    def _read_title(self):
        try:
            title = (self.page.title() or "").strip()
        except Exception as e:
            print(f"[Extract/提取] Title read failed / 标题读取失败: {e}")
            title = ""
        return title or DEFAULT_TITLE

    def _extract_passive(self):
        try:
            raws = self.page.read_all()
        except Exception as e:
            print(f"[Extract/提取] ❌ Read failed / 读取失败: {e}")
            return []
        turns = []
        for raw in raws:
            turn = _to_turn(raw)
            if turn:
                turns.append(turn)
        return turns

    def _extract_revealed(self):
        try:
            count = int(self.page.mark_reveal_controls() or 0)
        except Exception as e:
            print(f"[Extract/提取] ❌ Edit controls not readable / 无法定位 Edit 按钮: {e}")
            return []
        print(f"[Extract/提取] Found {count} edit controls / 找到 {count} 个 Edit 按钮")

        turns = []
        for index in range(count):
            try:
                turn = self._process_control(index)
            except Exception as e:
                print(f"[Extract/提取] Container {index} failed / 第 {index} 条处理失败: {e}")
                continue
            if turn:
                turns.append(turn)

        try:
            self.page.unmark_reveal_controls()
        except Exception as e:
            print(f"[Extract/提取] Control tags not cleared / 按钮标记清理失败: {e}")
        return turns

    def _process_control(self, index):
        if not self.page.locate(index):
            print(f"[Extract/提取] Control {index} disappeared / 第 {index} 个按钮已消失")
            return None
        self.page.activate(index)
        if not self.settle(lambda: self.page.is_revealed(index)):
            print(f"[Extract/提取] Control {index}: dwell elapsed / 等待超时，尝试直接读取")

        turn = _to_turn(self.page.read(index))

        try:
            self.page.restore(index)
            self.settle()
        except Exception as e:
            print(f"[Extract/提取] Control {index} restore failed / 恢复失败: {e}")
        return turn


# ============================================================
# Main entry: extract_conversation
# ============================================================

def connect_studio_tab(timeout=60):
    """Open a CDP websocket to the AI Studio tab, launching Chrome if needed."""
    import websocket

    if not is_cdp_alive():
        if not launch_chrome(STUDIO_URL):
            raise CdpError("Chrome launch failed / Chrome 启动失败")
    ws_url = find_tab(STUDIO_HOST)
    if not ws_url:
        raise CdpError(f"No {STUDIO_HOST} tab open / 未找到 AI Studio 标签页")
    return websocket.create_connection(ws_url, timeout=timeout)


def extract_conversation(reveal=True, dwell=DEFAULT_DWELL):
    """Extract the conversation in the open AI Studio tab. Never raises."""
    try:
        ws = connect_studio_tab()
    except Exception as e:
        print(f"[Extract/提取] ❌ {e}")
        return Transcript()
    try:
        return ConversationExtractor(StudioPage(ws), dwell=dwell).extract(reveal=reveal)
    except Exception as e:
        print(f"[Extract/提取] ❌ Extraction aborted / 提取中断: {e}")
        return Transcript()
    finally:
        ws.close()
