"""
Studio Sync — Core modules
AI Studio 对话同步到飞书 — 核心模块

Modules:
  config   — Paths, constants, Feishu configuration
  models   — Turn / Transcript / Result data types
  chrome   — Chrome discovery, launch, CDP port management
  cdp      — CDP/WebSocket communication primitives
  extract  — AI Studio conversation extractor
  feishu   — Feishu Open API client (token, create, convert, write)
  assemble — Transcript → Feishu blocks
  markdown — Markdown rendering and export
  sync     — Upload orchestrator
  relay    — Message dispatch between CLI / HTTP and the pipeline
"""

__version__ = "1.0.0"
