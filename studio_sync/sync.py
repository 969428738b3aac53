"""
Upload orchestrator: token → create document → assemble blocks → write.
上传流程编排：令牌 → 创建文档 → 组装 block → 写入。
"""
from studio_sync.assemble import assemble
from studio_sync.feishu import FeishuClient
from studio_sync.models import CONFIGURATION_MISSING, EXTRACTION_EMPTY, Outcome

REASON_NOT_CONFIGURED = "feishu not configured"
REASON_EMPTY = "no conversation turns to upload"
REASON_TOKEN = "token acquisition failed"
REASON_CREATE = "document creation failed"
REASON_ASSEMBLE = "block assembly failed"
REASON_UPLOAD = "upload failed"


def _fail(reason, kind):
    print(f"[Sync/同步] ❌ {reason}")
    return Outcome(ok=False, reason=reason, kind=kind)


def _run(config, transcript, client):
    if not config.is_configured():
        return _fail(REASON_NOT_CONFIGURED, CONFIGURATION_MISSING)
    if not transcript.turns:
        return _fail(REASON_EMPTY, EXTRACTION_EMPTY)

    credential = config.credential
    token = client.acquire_token(credential.app_id, credential.app_secret)
    if not token:
        return _fail(REASON_TOKEN, token.kind)

    handle = client.create_document(token.value, config.folder_token, transcript.title)
    if not handle:
        return _fail(REASON_CREATE, handle.kind)

    assembly = assemble(transcript, config.strategy, client=client, token=token.value)
    if not assembly:
        return _fail(REASON_ASSEMBLE, assembly.kind)

    written = client.write_blocks(
        token.value, handle.value, handle.value.root_block_id, assembly.value.payload(),
    )
    if not written:
        return _fail(REASON_UPLOAD, written.kind)

    print(f"[Sync/同步] ✅ Uploaded '{transcript.title}' ({len(transcript.turns)} turns) / 上传成功")
    return Outcome(ok=True)


def run_sync(config, transcript, client=None):
    """
    Upload a transcript as a new Feishu document.
    Stops at the first failing stage; never raises.
    """
    try:
        return _run(config, transcript, client or FeishuClient())
    except Exception as e:
        print(f"[Sync/同步] ❌ Unexpected error / 意外错误: {e!r}")
        return Outcome(ok=False, reason=str(e) or "unknown error")
