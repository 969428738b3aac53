"""
Data types shared by the extractor, assembler and uploader.
提取、组装、上传共用的数据结构。
"""
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

ROLE_USER = "user"
ROLE_MODEL = "model"
ROLES = (ROLE_USER, ROLE_MODEL)

DEFAULT_TITLE = "AI Studio Conversation"

# Failure kinds
CONFIGURATION_MISSING = "configuration_missing"
AUTH_FAILURE = "auth_failure"
PLATFORM_REJECTED = "platform_rejected"
TRANSPORT_FAILURE = "transport_failure"
EXTRACTION_EMPTY = "extraction_empty"


def now_ms():
    return int(time.time() * 1000)


def normalize_role(value):
    """Map a page role attribute (User/Model) to a Turn role, or None if unrecognized."""
    if not isinstance(value, str):
        return None
    role = value.strip().lower()
    return role if role in ROLES else None


@dataclass(frozen=True)
class Turn:
    role: str
    content: str

    def to_dict(self):
        return {"role": self.role, "content": self.content}


@dataclass
class Transcript:
    title: str = DEFAULT_TITLE
    turns: List[Turn] = field(default_factory=list)
    extracted_at: int = field(default_factory=now_ms)

    def to_dict(self):
        return {
            "title": self.title,
            "turns": [t.to_dict() for t in self.turns],
            "timestamp": self.extracted_at,
        }

    @classmethod
    def from_dict(cls, data):
        """Build a Transcript from its wire shape, dropping malformed turns."""
        data = data or {}
        turns = []
        for item in data.get("turns") or []:
            if not isinstance(item, dict):
                continue
            role = normalize_role(item.get("role"))
            content = item.get("content")
            if role and isinstance(content, str) and content.strip():
                turns.append(Turn(role, content.strip()))
        title = (data.get("title") or "").strip() or DEFAULT_TITLE
        timestamp = data.get("timestamp")
        return cls(
            title=title,
            turns=turns,
            extracted_at=timestamp if isinstance(timestamp, int) else now_ms(),
        )


@dataclass(frozen=True)
class Credential:
    app_id: str
    app_secret: str


@dataclass(frozen=True)
class FeishuConfig:
    app_id: str = ""
    app_secret: str = ""
    folder_token: str = ""
    strategy: str = "markdown"
    dwell: float = 0.5

    def is_configured(self):
        return bool(self.app_id and self.app_secret and self.folder_token)

    @property
    def credential(self):
        return Credential(self.app_id, self.app_secret)


@dataclass(frozen=True)
class DocumentHandle:
    obj_token: str

    @property
    def root_block_id(self):
        # A docx document's root block shares the document id.
        return self.obj_token


@dataclass
class Assembly:
    """Blocks ready to be written under a document root."""
    blocks: List[dict]
    first_level_block_ids: List[str] = field(default_factory=list)

    def payload(self, index=0):
        if self.first_level_block_ids:
            return {
                "index": index,
                "children_id": list(self.first_level_block_ids),
                "descendants": list(self.blocks),
            }
        return {"index": index, "children": list(self.blocks)}


@dataclass(frozen=True)
class Result:
    """Tagged success/failure value returned by platform operations."""
    ok: bool
    value: Any = None
    kind: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, value=None):
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind, reason):
        return cls(ok=False, kind=kind, reason=reason)

    def __bool__(self):
        return self.ok


@dataclass(frozen=True)
class Outcome:
    ok: bool
    reason: Optional[str] = None
    kind: Optional[str] = None

    def to_dict(self):
        if self.ok:
            return {"ok": True}
        return {"ok": False, "error": self.reason or "unknown error"}
