"""
AI Studio → 飞书 对话同步 — 命令行入口

接口:
  1. extract      → 提取当前 AI Studio 标签页的对话
  2. sync         → 提取并上传为飞书文档
  3. export       → 提取并保存为本地 Markdown
  4. config       → 写入飞书 App ID / Secret / 目标节点
  5. status       → 环境状态检查
  6. serve        → 启动 HTTP 消息接口

可作为: Python 模块 / CLI / HTTP API
"""
import argparse
import dataclasses
import io
import json
import sys

from studio_sync import config as cfg
from studio_sync.cdp import find_tab
from studio_sync.chrome import find_chrome, is_cdp_alive
from studio_sync.markdown import export_transcript
from studio_sync.models import Transcript
from studio_sync.relay import (
    EXTRACT_DATA, GET_CONVERSATION_DATA, UPLOAD_TO_FEISHU,
    Relay, default_handlers, serve_http,
)


def _relay(strategy=None):
    def load():
        conf = cfg.load_feishu_config()
        return dataclasses.replace(conf, strategy=strategy) if strategy else conf
    return Relay(default_handlers(load_config=load))


def _summary(data):
    turns = data.get("turns", [])
    out = {
        "success": bool(turns),
        "title": data.get("title"),
        "turn_count": len(turns),
        "timestamp": data.get("timestamp"),
    }
    if not turns:
        out["error"] = data.get("error") or "未找到对话数据，请确保页面已加载完成"
    return out


def extract(reveal=True, relay=None):
    """Extract the open conversation. Returns the transcript dict."""
    relay = relay or _relay()
    kind = EXTRACT_DATA if reveal else GET_CONVERSATION_DATA
    return relay.request({"type": kind})


def sync(strategy=None, reveal=True, relay=None):
    """
    Extract the open conversation and upload it to Feishu.

    Returns {"success": bool, "title": ..., "turn_count": ..., "error": ...}
    """
    conf = cfg.load_feishu_config()
    if not conf.is_configured():
        return {"success": False, "error": "未配置飞书信息，请先运行 config 命令"}
    relay = relay or _relay(strategy)
    data = extract(reveal, relay)
    result = _summary(data)
    if not result["success"]:
        return result
    outcome = relay.request({"type": UPLOAD_TO_FEISHU, "data": data})
    result["success"] = bool(outcome.get("ok"))
    if not result["success"]:
        result["error"] = outcome.get("error", "unknown error")
    return result


def export(output=None, reveal=True):
    data = extract(reveal)
    result = _summary(data)
    if result["success"]:
        result["md_path"] = export_transcript(Transcript.from_dict(data), output)
    return result


def status():
    conf = cfg.load_feishu_config()
    alive = is_cdp_alive()
    return {
        "chrome_found": find_chrome() is not None,
        "chrome_running": alive,
        "studio_tab_open": bool(alive and find_tab()),
        "feishu_configured": conf.is_configured(),
        "app_id": conf.app_id,
        "folder_token": conf.folder_token,
        "strategy": conf.strategy,
        "dwell": conf.dwell,
        "config_file": cfg.CONFIG_FILE,
        "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
    }


def _print(data):
    print(json.dumps(data, ensure_ascii=False, indent=2))


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="AI Studio 对话同步到飞书 — CLI / HTTP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用示例:
  # 配置飞书应用
  python studio_skill.py config --app-id cli_xxx --app-secret xxx --folder-token xxx

  # 提取并上传当前 AI Studio 对话
  python studio_skill.py sync
  python studio_skill.py sync --strategy direct

  # 仅提取 / 导出为 Markdown
  python studio_skill.py extract --json
  python studio_skill.py export -o chat.md

  # 启动 HTTP 消息接口
  python studio_skill.py serve --port 8900
        """,
    )
    sub = parser.add_subparsers(dest="action")

    p = sub.add_parser("extract", help="提取对话")
    p.add_argument("--no-reveal", action="store_true", help="不点击 Edit 按钮，直接读取")
    p.add_argument("--json", action="store_true", help="输出完整对话 JSON")

    p = sub.add_parser("sync", help="提取并上传到飞书")
    p.add_argument("--strategy", choices=cfg.STRATEGIES, help="block 组装方式")
    p.add_argument("--no-reveal", action="store_true", help="不点击 Edit 按钮，直接读取")

    p = sub.add_parser("export", help="提取并保存为 Markdown")
    p.add_argument("--output", "-o", help="输出文件路径")
    p.add_argument("--no-reveal", action="store_true", help="不点击 Edit 按钮，直接读取")

    p = sub.add_parser("config", help="写入飞书配置")
    p.add_argument("--app-id")
    p.add_argument("--app-secret")
    p.add_argument("--folder-token", help="知识空间 / 目标节点 token")
    p.add_argument("--strategy", choices=cfg.STRATEGIES)
    p.add_argument("--dwell", type=float, help="点击后等待秒数")

    sub.add_parser("status", help="环境状态检查")

    p = sub.add_parser("serve", help="启动 HTTP 消息接口")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8900, help="端口号")

    args = parser.parse_args(argv)

    # Ensure UTF-8 output (critical for Chinese content)
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')

    if args.action == "extract":
        data = extract(not args.no_reveal)
        _print(data if args.json else _summary(data))
    elif args.action == "sync":
        _print(sync(args.strategy, not args.no_reveal))
    elif args.action == "export":
        _print(export(args.output, not args.no_reveal))
    elif args.action == "config":
        saved = cfg.save_feishu_config({
            "app_id": args.app_id,
            "app_secret": args.app_secret,
            "folder_token": args.folder_token,
            "strategy": args.strategy,
            "dwell": args.dwell,
        })
        _print({k: v for k, v in saved.items() if k != "app_secret"})
    elif args.action == "status":
        _print(status())
    elif args.action == "serve":
        serve_http(_relay(), args.host, args.port)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
