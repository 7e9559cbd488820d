"""
config.py - Environment settings and run-time knobs
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

# === ENV ===
CHROME_PATH = os.environ.get("CHROME_PATH", "")
CDP_HOST = os.environ.get("CDP_HOST", "127.0.0.1")
CDP_PORT = int(os.environ.get("CDP_PORT", 9222))
CHROME_USER_DATA = os.environ.get(
    "CHROME_USER_DATA", os.path.expanduser("~/.chrome-devtools-audit"))
OUTPUT_DIR = os.environ.get("OUTPUT_DIR", str(Path("latest-run") / "devtools-lhrs"))

REDIS_HOST = os.environ.get("REDIS_HOST", "localhost")
REDIS_PORT = int(os.environ.get("REDIS_PORT", 6379))
MA_PREFIX = os.environ.get("MA_PREFIX", "ma")

# Searched on PATH when CHROME_PATH is not set
BROWSER_NAMES = ("chromium", "chromium-browser", "google-chrome", "google-chrome-stable", "chrome")
BROWSER_PATHS = (
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
)

# Lighthouse panel contract inside the DevTools frontend
PANEL_NAME = "lighthouse"
REPORT_METHOD = "_buildReportUI"


@dataclass
class RetryPolicy:
    """Bounded retry: at most `max_attempts`, sleeping delay * backoff**n
    (capped at max_delay) between attempts, never past `timeout` seconds."""
    max_attempts: int = 30
    delay: float = 0.25
    backoff: float = 1.5
    max_delay: float = 3.0
    timeout: float = 60.0

    def delays(self):
        """Sleep durations between consecutive attempts."""
        current = self.delay
        for _ in range(max(self.max_attempts - 1, 0)):
            yield min(current, self.max_delay)
            current *= self.backoff


@dataclass
class SessionConfig:
    panel: str = PANEL_NAME
    report_method: str = REPORT_METHOD
    navigate: bool = True
    disable_js_on_load: bool = False
    command_timeout: float = 30.0
    load_timeout: float = 60.0
    inspector_timeout: float = 15.0
    capture_timeout: float = 300.0
    start_policy: RetryPolicy = field(default_factory=RetryPolicy)
