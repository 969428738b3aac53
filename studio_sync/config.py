"""
Paths, constants, Feishu configuration.
路径、常量、飞书配置。
"""
import json
import math
import os
import platform
import re

from studio_sync.models import FeishuConfig

CDP_PORT = 9222
STUDIO_URL = "https://aistudio.google.com/"
STUDIO_HOST = "aistudio.google.com"
HTTP_TIMEOUT = 30
PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

STRATEGIES = ("markdown", "direct")
DEFAULT_STRATEGY = "markdown"
DEFAULT_DWELL = 0.5

ENV_KEYS = {
    "app_id": "FEISHU_APP_ID",
    "app_secret": "FEISHU_APP_SECRET",
    "folder_token": "FEISHU_FOLDER_TOKEN",
    "strategy": "STUDIO_SYNC_STRATEGY",
    "dwell": "STUDIO_SYNC_DWELL",
}


def get_cache_dir():
    """Platform-specific cache directory for config and the Chrome profile."""
    system = platform.system()
    if system == "Darwin":
        base = os.path.expanduser("~/Library/Caches")
    elif system == "Windows":
        base = os.environ.get("LOCALAPPDATA", os.path.expanduser("~"))
    else:
        base = os.environ.get("XDG_CACHE_HOME", os.path.expanduser("~/.cache"))
    cache = os.path.join(base, "studio-sync")
    os.makedirs(cache, exist_ok=True)
    return cache


def get_output_dir():
    """Default output directory for exported transcripts."""
    out = os.path.join(PROJECT_DIR, "output")
    os.makedirs(out, exist_ok=True)
    return out


CACHE_DIR = get_cache_dir()
CONFIG_FILE = os.path.join(CACHE_DIR, "config.json")
CHROME_PROFILE = os.path.join(CACHE_DIR, "chrome-profile")


def safe_filename(title, max_len=80):
    """Sanitize a string for use as a filename."""
    return re.sub(r'[\\/:*?"<>|\s]+', '_', title).strip('_')[:max_len] or "conversation"


def _read_config_file(path):
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"[Config/配置] Read failed / 读取失败 ({path}): {e}")
        return {}
    return data if isinstance(data, dict) else {}


def load_feishu_config(path=None, environ=None):
    """
    Load Feishu configuration: config file first, environment variables override.
    Missing values stay empty; callers check FeishuConfig.is_configured().
    """
    environ = os.environ if environ is None else environ
    values = _read_config_file(path or CONFIG_FILE)
    for key, env_name in ENV_KEYS.items():
        if environ.get(env_name):
            values[key] = environ[env_name]

    strategy = str(values.get("strategy") or DEFAULT_STRATEGY).lower()
    if strategy not in STRATEGIES:
        print(f"[Config/配置] Unknown strategy '{strategy}', using {DEFAULT_STRATEGY} / 未知策略")
        strategy = DEFAULT_STRATEGY

    try:
        dwell = float(values.get("dwell", DEFAULT_DWELL))
    except (TypeError, ValueError):
        dwell = DEFAULT_DWELL
    if not math.isfinite(dwell):
        print(f"[Config/配置] Dwell must be a finite number, using {DEFAULT_DWELL} / 等待时间无效")
        dwell = DEFAULT_DWELL

    return FeishuConfig(
        app_id=str(values.get("app_id") or "").strip(),
        app_secret=str(values.get("app_secret") or "").strip(),
        folder_token=str(values.get("folder_token") or "").strip(),
        strategy=strategy,
        dwell=max(dwell, 0.0),
    )


def save_feishu_config(updates, path=None):
    """Merge non-empty values into the config file. Returns the saved dict."""
    path = path or CONFIG_FILE
    values = _read_config_file(path)
    values.update({k: v for k, v in updates.items() if v not in (None, "")})
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(values, f, ensure_ascii=False, indent=2)
    print(f"[Config/配置] Saved {path} / 已保存配置")
    return values
