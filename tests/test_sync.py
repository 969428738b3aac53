import pytest

from studio_sync.extract import ConversationExtractor
from studio_sync.feishu import FeishuClient
from studio_sync.models import (
    AUTH_FAILURE, CONFIGURATION_MISSING, EXTRACTION_EMPTY, Credential, FeishuConfig, Outcome,
    Transcript, Turn,
)
from studio_sync.sync import (
    REASON_ASSEMBLE, REASON_CREATE, REASON_EMPTY, REASON_NOT_CONFIGURED, REASON_TOKEN,
    REASON_UPLOAD, run_sync,
)
from tests.fakes import NETWORK_DOWN, FakeClock, FakePage, FakePost, ok_responses

CONFIG = FeishuConfig(app_id="cli_a", app_secret="secret", folder_token="space_9")
TRANSCRIPT = Transcript(title="Chat", turns=[Turn("user", "hi"), Turn("model", "hello")])


def run(overrides=None, config=CONFIG, transcript=TRANSCRIPT):
    post = FakePost(ok_responses(overrides))
    outcome = run_sync(config, transcript, client=FeishuClient(post=post))
    return outcome, post


def test_scenario_extract_then_upload():
    page = FakePage([
        {"role": "User", "content": "What is 2+2?"},
        {"role": "Model", "content": "4"},
    ])
    clock = FakeClock()
    transcript = ConversationExtractor(page, sleep=clock.sleep, clock=clock).extract()
    assert [t.role for t in transcript.turns] == ["user", "model"]

    outcome, post = run(transcript=transcript)

    assert outcome == Outcome(ok=True)
    assert outcome.to_dict() == {"ok": True}
    assert [post.count(k) for k in ("tenant_access_token", "/nodes", "/blocks/convert", "/descendant")] == [1, 1, 1, 1]
    write = post.calls[-1]
    assert "/documents/doc-1/blocks/doc-1/descendant" in write["url"]
    assert write["body"]["children_id"] == ["b1", "b2"]
    assert [b["block_id"] for b in write["body"]["descendants"]] == ["b1", "b2"]
    assert all(c["token"] == "t-123" for c in post.calls[1:])


def test_token_requested_with_configured_credential():
    assert CONFIG.credential == Credential("cli_a", "secret")
    outcome, post = run()
    assert outcome.ok
    assert post.calls[0]["body"] == {"app_id": "cli_a", "app_secret": "secret"}


def test_direct_strategy_uses_children_endpoint():
    config = FeishuConfig("cli_a", "secret", "space_9", strategy="direct")
    outcome, post = run(config=config)
    assert outcome.ok
    assert post.count("/blocks/convert") == 0
    assert len(post.calls[-1]["body"]["children"]) == 4


def test_token_failure_short_circuits():
    outcome, post = run({"tenant_access_token": {"code": 1, "msg": "bad"}})

    assert outcome.to_dict() == {"ok": False, "error": REASON_TOKEN}
    assert outcome.kind == AUTH_FAILURE
    assert post.count("/nodes") == 0
    assert post.count("/descendant") == 0
    assert len(post.calls) == 1


def test_create_failure_short_circuits():
    outcome, post = run({"/nodes": {"code": 131006}})
    assert outcome.reason == REASON_CREATE
    assert post.count("/blocks/convert") == 0
    assert post.count("/descendant") == 0


def test_assembly_failure_short_circuits():
    outcome, post = run({"/blocks/convert": NETWORK_DOWN})
    assert outcome.reason == REASON_ASSEMBLE
    assert post.count("/descendant") == 0


def test_write_failure():
    outcome, _ = run({"/descendant": {"code": 1770001}})
    assert outcome.to_dict() == {"ok": False, "error": REASON_UPLOAD}


@pytest.mark.parametrize("config", [
    FeishuConfig(),
    FeishuConfig(app_id="cli_a", app_secret="secret"),
    FeishuConfig(app_id="", app_secret="secret", folder_token="space_9"),
])
def test_missing_configuration_makes_no_call(config):
    outcome, post = run(config=config)
    assert outcome.reason == REASON_NOT_CONFIGURED
    assert outcome.kind == CONFIGURATION_MISSING
    assert post.calls == []


def test_empty_transcript_reported_separately():
    outcome, post = run(transcript=Transcript(title="Chat"))
    assert outcome.reason == REASON_EMPTY
    assert outcome.kind == EXTRACTION_EMPTY
    assert post.calls == []


class ExplodingClient:
    def acquire_token(self, app_id, app_secret):
        raise RuntimeError("boom")


def test_unexpected_exception_is_contained():
    outcome = run_sync(CONFIG, TRANSCRIPT, client=ExplodingClient())
    assert outcome.to_dict() == {"ok": False, "error": "boom"}


class SilentExplodingClient:
    def acquire_token(self, app_id, app_secret):
        raise KeyError()


def test_unexpected_exception_without_message():
    outcome = run_sync(CONFIG, TRANSCRIPT, client=SilentExplodingClient())
    assert outcome.ok is False
    assert outcome.reason == "unknown error"
