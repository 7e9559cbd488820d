"""
browser.py - Browser process handle and page lifecycle
=======================================================

Chrome is driven through its debug port:
  - HTTP endpoints (/json, /json/version, /json/new, /json/close/{id}) for
    listing, creating and closing targets
  - CDP WebSocket (see cdp.py) for everything else

Two ways to get a Browser:
  - Browser.launch(): start our own Chrome with --auto-open-devtools-for-tabs,
    so every new tab gets a DevTools window (an inspectable "devtools://" target)
  - Browser.attach(): use a Chrome already listening on CDP_PORT. It must have
    been started with --auto-open-devtools-for-tabs too. We never stop it.

The Browser handle is shared by all sessions of a batch and only used to spawn
and close pages. Each page is acquired with `with browser.page() as page:` and
closed on every exit path.
"""

import json
import logging
import os
import shutil
import subprocess
import time
import urllib.error
import urllib.parse
import urllib.request
from contextlib import contextmanager
from dataclasses import dataclass

from .config import (BROWSER_NAMES, BROWSER_PATHS, CDP_HOST, CDP_PORT,
                     CHROME_PATH, CHROME_USER_DATA)
from .errors import (BrowserLaunchError, BrowserNotFoundError, InspectorNotFoundError,
                     ResourceError)

logger = logging.getLogger(__name__)

DEVTOOLS_SCHEME = "devtools://"
POLL_INTERVAL = 0.2


def resolve_executable(explicit=None):
    """
    Find the browser binary: explicit path, then $CHROME_PATH, then well-known
    names on PATH, then the macOS application bundles. None if nothing found.
    """
    for candidate in (explicit, CHROME_PATH):
        if candidate and candidate.strip():
            return candidate.strip()
    for name in BROWSER_NAMES:
        found = shutil.which(name)
        if found:
            return found
    for path in BROWSER_PATHS:
        if os.path.isfile(path):
            return path
    return None


def build_launch_args(port, user_data_dir, extra_args=()):
    args = [
        f"--remote-debugging-port={port}",
        f"--user-data-dir={user_data_dir}",
        "--auto-open-devtools-for-tabs",
        "--remote-allow-origins=*",
        "--no-first-run",
        "--no-default-browser-check",
    ]
    # Chrome refuses to start sandboxed as root (containers)
    if hasattr(os, "geteuid") and os.geteuid() == 0:
        args.append("--no-sandbox")
    for item in extra_args:
        if item not in args:
            args.append(item)
    args.append("about:blank")
    return args


def is_devtools_target(target):
    return target.get("url", "").startswith(DEVTOOLS_SCHEME)


@dataclass
class Page:
    """A tab opened for one target URL, and the DevTools window inspecting it."""
    target: dict
    inspector: dict

    @property
    def id(self):
        return self.target["id"]

    def ws_url(self, host=CDP_HOST, port=CDP_PORT):
        return _ws_url(self.target, host, port)

    def inspector_ws_url(self, host=CDP_HOST, port=CDP_PORT):
        return _ws_url(self.inspector, host, port)


def _ws_url(target, host, port):
    # Chrome omits webSocketDebuggerUrl for targets that already have a client
    return target.get("webSocketDebuggerUrl") or f"ws://{host}:{port}/devtools/page/{target['id']}"


class Browser:
    """Handle on one Chrome process reachable on host:port."""

    def __init__(self, host=CDP_HOST, port=CDP_PORT, process=None):
        self.host = host
        self.port = port
        self.process = process

    # =========================================================================
    # ACQUISITION
    # =========================================================================

    @classmethod
    def launch(cls, executable=None, port=CDP_PORT, user_data_dir=CHROME_USER_DATA,
               extra_args=(), ready_timeout=30.0):
        """
        Start Chrome and wait until its debug port answers.

        Raises:
            BrowserNotFoundError: no executable (set CHROME_PATH).
            BrowserLaunchError: Chrome exited or never opened its debug port.
        """
        path = resolve_executable(executable)
        if not path:
            raise BrowserNotFoundError("No Chrome/Chromium executable found (set CHROME_PATH)")

        os.makedirs(user_data_dir, exist_ok=True)
        cmd = [path, *build_launch_args(port, user_data_dir, extra_args)]
        try:
            process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            raise BrowserLaunchError(f"Failed to launch {path}: {e}") from e
        logger.info(f"Launched browser on port {port}: {path}")

        browser = cls(CDP_HOST, port, process)
        deadline = time.monotonic() + ready_timeout
        try:
            while time.monotonic() < deadline:
                if process.poll() is not None:
                    raise BrowserLaunchError(f"Browser exited with code {process.returncode}")
                if browser.is_running():
                    logger.info(f"Browser ready: {browser.version().get('Browser', '?')}")
                    return browser
                time.sleep(POLL_INTERVAL)
        except BaseException:
            # interrupted or failed while waiting: do not leave Chrome behind
            browser.close()
            raise

        browser.close()
        raise BrowserLaunchError(f"Browser did not open port {port} within {ready_timeout}s")

    @classmethod
    def attach(cls, host=CDP_HOST, port=CDP_PORT):
        browser = cls(host, port)
        if not browser.is_running():
            raise ResourceError(f"Chrome is not running on {host}:{port}")
        logger.info(f"Attached to browser on {host}:{port}")
        return browser

    def close(self):
        """Stop the process if we launched it. Attached browsers are left alone."""
        if not self.process or self.process.poll() is not None:
            return
        logger.info("Closing browser")
        self.process.terminate()
        try:
            self.process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self.process.kill()
            self.process.wait(timeout=5)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # =========================================================================
    # HTTP ENDPOINTS
    # =========================================================================

    def _http(self, path, method="GET", timeout=5):
        url = f"http://{self.host}:{self.port}{path}"
        req = urllib.request.Request(url, method=method)
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                body = resp.read().decode()
        except (urllib.error.URLError, OSError) as e:
            raise ResourceError(f"Browser not reachable at {url}: {e}") from e
        try:
            return json.loads(body)
        except ValueError:
            return body

    def is_running(self):
        try:
            self._http("/json/version", timeout=3)
            return True
        except ResourceError:
            return False

    def version(self):
        return self._http("/json/version")

    def get_targets(self):
        return self._http("/json/list")

    def new_target(self, url="about:blank"):
        encoded = urllib.parse.quote(url, safe="")
        return self._http(f"/json/new?{encoded}", method="PUT", timeout=10)

    def close_target(self, target_id):
        try:
            self._http(f"/json/close/{target_id}")
            return True
        except ResourceError as e:
            logger.warning(f"Could not close target {target_id}: {e}")
            return False

    # =========================================================================
    # PAGES
    # =========================================================================

    def wait_inspector(self, known_ids, timeout):
        """Poll /json until a DevTools target not in known_ids shows up."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            for target in self.get_targets():
                if is_devtools_target(target) and target["id"] not in known_ids:
                    return target
            time.sleep(POLL_INTERVAL)
        raise InspectorNotFoundError(
            f"No DevTools window appeared within {timeout}s "
            "(is Chrome running with --auto-open-devtools-for-tabs?)")

    @contextmanager
    def page(self, url="about:blank", inspector_timeout=15.0):
        """Open a fresh tab and its DevTools window; close the tab on exit."""
        known = {t["id"] for t in self.get_targets() if is_devtools_target(t)}
        target = self.new_target(url)
        logger.debug(f"Opened page {target['id']}")
        try:
            inspector = self.wait_inspector(known, inspector_timeout)
            yield Page(target, inspector)
        finally:
            self.close_target(target["id"])
            logger.debug(f"Closed page {target['id']}")
