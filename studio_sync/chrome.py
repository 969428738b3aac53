"""
Chrome discovery, launch, and CDP port management.
Chrome 查找、启动、CDP 端口管理。
"""
import os
import platform
import shutil
import subprocess
import time
import urllib.request

from studio_sync.config import CDP_PORT, CHROME_PROFILE, STUDIO_URL


def find_chrome():
    """Find Chrome/Chromium executable path. Returns path or None."""
    system = platform.system()
    if system == "Darwin":
        candidates = [
            "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
            "/Applications/Chromium.app/Contents/MacOS/Chromium",
        ]
    elif system == "Windows":
        candidates = [
            os.path.join(os.environ.get("PROGRAMFILES", ""), "Google", "Chrome", "Application", "chrome.exe"),
            os.path.join(os.environ.get("LOCALAPPDATA", ""), "Google", "Chrome", "Application", "chrome.exe"),
        ]
    else:
        candidates = ["google-chrome", "google-chrome-stable", "chromium-browser", "chromium"]

    for c in candidates:
        if os.path.isfile(c):
            return c
        found = shutil.which(c)
        if found:
            return found
    return None


def is_cdp_alive(port=CDP_PORT):
    """Check if Chrome CDP is responding on the given port."""
    try:
        urllib.request.urlopen(f"http://127.0.0.1:{port}/json/version", timeout=3)
        return True
    except OSError:
        return False


def launch_chrome(url=STUDIO_URL, port=CDP_PORT, wait=30):
    """
    Launch Chrome with CDP debugging on a dedicated profile and open AI Studio.
    Returns True once CDP answers, False on failure.

    The dedicated user-data-dir keeps the Google login between runs and
    does not conflict with an already running Chrome.
    """
    if is_cdp_alive(port):
        return True

    chrome = find_chrome()
    if not chrome:
        print("[Chrome] ❌ Chrome not found / 未找到 Chrome")
        return False

    os.makedirs(CHROME_PROFILE, exist_ok=True)
    args = [
        chrome,
        f"--remote-debugging-port={port}",
        "--remote-allow-origins=*",
        f"--user-data-dir={CHROME_PROFILE}",
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-session-crashed-bubble",
    ]
    if url:
        args.append(url)

    print(f"[Chrome] Starting CDP on port {port} / 启动 CDP (端口 {port})")
    subprocess.Popen(args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)

    for _ in range(wait):
        time.sleep(1)
        if is_cdp_alive(port):
            print("[Chrome] ✅ CDP ready / CDP 就绪")
            return True

    print("[Chrome] ⏰ CDP startup timeout / CDP 启动超时")
    return False
