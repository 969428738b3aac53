import pytest

import studio_skill
from studio_sync import config as cfg
from studio_sync.models import FeishuConfig, Outcome, Transcript, Turn
from studio_sync.relay import Relay, default_handlers

CONFIG = FeishuConfig(app_id="cli_a", app_secret="secret", folder_token="space_9")
TURNS = [Turn("user", "hi"), Turn("model", "hello")]


class FakeBackend:
    """Extractor and uploader behind a real Relay, recording every call."""

    def __init__(self, transcript, outcome=None):
        self.transcript = transcript
        self.outcome = outcome or Outcome(ok=True)
        self.calls = []

    def extract(self, reveal, dwell):
        self.calls.append(("extract", reveal))
        return self.transcript

    def sync(self, conf, transcript):
        self.calls.append(("sync", transcript.title, len(transcript.turns)))
        return self.outcome

    def relay(self):
        return Relay(default_handlers(extract=self.extract, sync=self.sync,
                                      load_config=lambda: CONFIG))


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(cfg, "load_feishu_config", lambda *a, **kw: CONFIG)


def test_sync_refuses_when_not_configured(monkeypatch):
    monkeypatch.setattr(cfg, "load_feishu_config", lambda *a, **kw: FeishuConfig())
    backend = FakeBackend(Transcript(title="Chat", turns=TURNS))

    result = studio_skill.sync(relay=backend.relay())

    assert result["success"] is False
    assert "config" in result["error"]
    assert backend.calls == []


def test_sync_empty_conversation_is_an_error(configured):
    backend = FakeBackend(Transcript(title="Chat"))

    result = studio_skill.sync(relay=backend.relay())

    assert result["success"] is False
    assert result["turn_count"] == 0
    assert result["error"]
    assert backend.calls == [("extract", True)]


def test_sync_reports_upload_failure(configured):
    backend = FakeBackend(
        Transcript(title="Chat", turns=TURNS),
        outcome=Outcome(ok=False, reason="upload failed"),
    )

    result = studio_skill.sync(relay=backend.relay())

    assert result["success"] is False
    assert result["error"] == "upload failed"
    assert result["title"] == "Chat"
    assert result["turn_count"] == 2
    assert backend.calls == [("extract", True), ("sync", "Chat", 2)]


def test_sync_success(configured):
    backend = FakeBackend(Transcript(title="Chat", turns=TURNS))

    result = studio_skill.sync(reveal=False, relay=backend.relay())

    assert result["success"] is True
    assert "error" not in result
    assert backend.calls == [("extract", False), ("sync", "Chat", 2)]


def test_extract_routes_by_reveal():
    backend = FakeBackend(Transcript(title="Chat", turns=TURNS, extracted_at=7))
    relay = backend.relay()

    data = studio_skill.extract(reveal=False, relay=relay)
    studio_skill.extract(relay=relay)

    assert data == {
        "title": "Chat",
        "turns": [{"role": "user", "content": "hi"}, {"role": "model", "content": "hello"}],
        "timestamp": 7,
    }
    assert backend.calls == [("extract", False), ("extract", True)]


def test_summary_keeps_extraction_error():
    summary = studio_skill._summary({"title": "T", "turns": [], "error": "page crashed"})
    assert summary == {
        "success": False, "title": "T", "turn_count": 0, "timestamp": None, "error": "page crashed",
    }


def test_export_writes_markdown(monkeypatch, tmp_path):
    backend = FakeBackend(Transcript(title="Chat", turns=TURNS))
    monkeypatch.setattr(studio_skill, "_relay", lambda strategy=None: backend.relay())

    result = studio_skill.export(str(tmp_path / "chat.md"))

    assert result["success"] is True
    text = open(result["md_path"], encoding="utf-8").read()
    assert text.startswith("# Chat\n")
    assert "hello" in text
