"""
Transcript → Feishu docx blocks.
对话 → 飞书文档 block。

Two strategies share one contract, assemble(transcript) -> Result[Assembly]:
  direct   — callout marker + text block per turn, built locally
  markdown — whole transcript converted by the Feishu convert endpoint
"""
import copy

from studio_sync.markdown import render_conversion_markdown
from studio_sync.models import (
    EXTRACTION_EMPTY, PLATFORM_REJECTED, ROLE_MODEL, ROLE_USER,
    Assembly, Result,
)

BLOCK_TEXT = 2
BLOCK_CALLOUT = 19

ROLE_PRESETS = {
    ROLE_USER: {"emoji_id": "bust_in_silhouette", "background_color": 5, "border_color": 5},
    ROLE_MODEL: {"emoji_id": "robot_face", "background_color": 6, "border_color": 6},
}


def _block_id(block):
    return block.get("block_id") if isinstance(block, dict) else None


def sort_blocks(blocks, first_level_block_ids):
    """
    Order blocks by their position in first_level_block_ids.
    Blocks whose id is not listed keep their relative order after all listed ones.
    """
    position = {}
    for i, block_id in enumerate(first_level_block_ids):
        position.setdefault(block_id, i)
    tail = len(first_level_block_ids)
    return sorted(blocks, key=lambda b: position.get(_block_id(b), tail))


def _strip_merge_info(blocks):
    # The descendant endpoint rejects the read-only merge_info returned for tables.
    cleaned = []
    for block in blocks:
        table = block.get("table") if isinstance(block, dict) else None
        prop = table.get("property") if isinstance(table, dict) else None
        if isinstance(prop, dict) and "merge_info" in prop:
            block = copy.deepcopy(block)
            del block["table"]["property"]["merge_info"]
        cleaned.append(block)
    return cleaned


def text_block(content):
    return {
        "block_type": BLOCK_TEXT,
        "text": {"elements": [{"text_run": {"content": content}}], "style": {}},
    }


def callout_block(role):
    return {"block_type": BLOCK_CALLOUT, "callout": dict(ROLE_PRESETS[role])}


def assemble_direct(transcript):
    blocks = []
    for turn in transcript.turns:
        blocks.append(callout_block(turn.role))
        blocks.append(text_block(turn.content))
    return Result.success(Assembly(blocks))


def assemble_markdown(transcript, client, token):
    res = client.convert_markdown(token, render_conversion_markdown(transcript))
    if not res:
        return res
    blocks, first_level_ids = res.value
    if not blocks:
        print("[Assemble/组装] ❌ Conversion returned no blocks / 转换结果为空")
        return Result.failure(PLATFORM_REJECTED, "convert: no blocks")
    ordered = _strip_merge_info(sort_blocks(blocks, first_level_ids))
    return Result.success(Assembly(ordered, list(first_level_ids)))


def assemble(transcript, strategy="markdown", client=None, token=None):
    """Build the blocks for a transcript. Value: Assembly."""
    if not transcript.turns:
        return Result.failure(EXTRACTION_EMPTY, "transcript has no turns")
    if strategy == "direct":
        res = assemble_direct(transcript)
    elif strategy == "markdown":
        if client is None or not token:
            raise ValueError("markdown strategy needs a Feishu client and token")
        res = assemble_markdown(transcript, client, token)
    else:
        raise ValueError(f"unknown assembly strategy: {strategy}")
    if res:
        print(f"[Assemble/组装] {len(res.value.blocks)} blocks ({strategy}) / 已生成 block")
    return res
