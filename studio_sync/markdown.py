"""
Markdown rendering and export.
Markdown 渲染与导出。
"""
import datetime
import os
import re

from studio_sync.config import get_output_dir, safe_filename
from studio_sync.models import ROLE_USER

TURN_DELIMITER = "---"
ROLE_LABELS = {
    "user": "👤 User / 用户",
    "model": "🤖 Model / 模型",
}


def render_conversion_markdown(transcript):
    """
    Markdown submitted to the Feishu convert endpoint: each turn wrapped in
    `---` rules. Content is kept apart from the rules by a blank line so a
    trailing line is not read as a setext heading.
    """
    sections = [f"{TURN_DELIMITER}\n\n{t.content}\n\n{TURN_DELIMITER}" for t in transcript.turns]
    return "\n".join(sections) + ("\n" if sections else "")


def cleanup_markdown(md_text, title=""):
    """Clean up Markdown: normalize whitespace, add title if missing."""
    md_text = re.sub(r'\n{4,}', '\n\n\n', md_text)
    md_text = re.sub(r' +\n', '\n', md_text)
    if title and not md_text.strip().startswith('#'):
        md_text = f"# {title}\n\n{md_text}"
    return md_text.strip() + "\n"


def render_export_markdown(transcript):
    """Readable Markdown for a local copy of the transcript."""
    when = datetime.datetime.fromtimestamp(transcript.extracted_at / 1000)
    parts = [f"> Extracted / 提取时间: {when:%Y-%m-%d %H:%M:%S}"]
    for turn in transcript.turns:
        label = ROLE_LABELS.get(turn.role, turn.role)
        parts.append(f"### {label}\n\n{turn.content}")
    return cleanup_markdown("\n\n".join(parts), transcript.title)


def export_transcript(transcript, output_path=None):
    """Write the transcript to a Markdown file. Returns the absolute path."""
    if not output_path:
        output_path = os.path.join(get_output_dir(), f"{safe_filename(transcript.title)}.md")
    parent = os.path.dirname(output_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(render_export_markdown(transcript))
    users = sum(1 for t in transcript.turns if t.role == ROLE_USER)
    print(f"[Export/导出] ✅ {output_path} ({users} user / {len(transcript.turns) - users} model)")
    return os.path.abspath(output_path)
