"""
cdp.py - Synchronous Chrome DevTools Protocol client
=====================================================

CDP is a JSON-RPC-like protocol over WebSocket. Each command is sent as:
  {"id": N, "method": "Domain.method", "params": {...}}
And Chrome responds with:
  {"id": N, "result": {...}}                 -- on success
  {"id": N, "error": {"message": "..."}}     -- on failure
Events ({"method": ..., "params": ...} without id) can arrive at any time.

One CDP instance = one WebSocket = one target (a page, or the DevTools
frontend inspecting that page). The client manages:
  - connection lifecycle (connect/close, usable as a context manager)
  - message id auto-increment for request/response correlation
  - a timeout on every command
  - buffering of events received while waiting for a response, so that
    wait_event() can pick up an event that fired during another command
"""

import json
import logging
import time
from collections import deque

import websocket

from .config import CDP_HOST, CDP_PORT
from .errors import CDPError, RemoteEvaluationError

logger = logging.getLogger(__name__)

# recv() granularity while waiting; the overall deadline is checked between reads
RECV_SLICE = 1.0
# unclaimed events kept per session; the oldest are dropped first
MAX_BUFFERED_EVENTS = 1000


def exception_message(details):
    """Human readable text out of a Runtime exceptionDetails object."""
    exc = details.get("exception") or {}
    return exc.get("description") or details.get("text") or "Remote exception"


class CDP:
    """
    Usage:
        with CDP.for_target(target_id) as cdp:
            cdp.send("Runtime.enable")
            title = cdp.evaluate("document.title")
    """

    def __init__(self, ws_url, timeout=30):
        self.ws_url = ws_url
        self.timeout = timeout
        self.ws = None
        self.msg_id = 0
        self.events = deque(maxlen=MAX_BUFFERED_EVENTS)

    @classmethod
    def for_target(cls, target_id, timeout=30, host=CDP_HOST, port=CDP_PORT):
        return cls(f"ws://{host}:{port}/devtools/page/{target_id}", timeout=timeout)

    def connect(self):
        """
        Open the WebSocket.

        Returns:
            self, for chaining.

        Raises:
            CDPError: the target refused the connection (stale target, Chrome gone...).
        """
        try:
            self.ws = websocket.create_connection(self.ws_url, timeout=self.timeout)
        except (websocket.WebSocketException, OSError) as e:
            raise CDPError(f"WebSocket connection to {self.ws_url} failed: {e}") from e
        logger.debug(f"CDP connected: {self.ws_url}")
        return self

    def close(self):
        if self.ws:
            try:
                self.ws.close()
            except (websocket.WebSocketException, OSError) as e:
                logger.debug(f"CDP close error ignored: {e}")
            self.ws = None

    def __enter__(self):
        if not self.ws:
            self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # =========================================================================
    # LOW LEVEL
    # =========================================================================

    def _recv(self, deadline):
        """Read one message, or None if nothing arrived within RECV_SLICE."""
        self.ws.settimeout(max(0.01, min(RECV_SLICE, deadline - time.monotonic())))
        try:
            raw = self.ws.recv()
        except websocket.WebSocketTimeoutException:
            return None
        except (websocket.WebSocketException, OSError) as e:
            raise CDPError(f"WebSocket failed: {e}") from e
        if not raw:
            # close frame: the tab or DevTools window went away
            raise CDPError("WebSocket closed by peer")
        try:
            return json.loads(raw)
        except ValueError as e:
            raise CDPError(f"Invalid CDP message: {e}") from e

    def send(self, method, params=None, timeout=None):
        """
        Send a command and wait for its response.

        Events received in the meantime are kept in self.events.

        Returns:
            dict: the "result" field of the response (may be empty).

        Raises:
            CDPError: not connected, transport failure, protocol error or timeout.
        """
        if not self.ws:
            raise CDPError(f"Not connected ({method})")

        self.msg_id += 1
        msg_id = self.msg_id
        cmd = {"id": msg_id, "method": method}
        if params:
            cmd["params"] = params

        try:
            self.ws.send(json.dumps(cmd))
        except (websocket.WebSocketException, OSError) as e:
            raise CDPError(f"WebSocket send failed ({method}): {e}") from e

        deadline = time.monotonic() + (timeout or self.timeout)
        while time.monotonic() < deadline:
            message = self._recv(deadline)
            if message is None:
                continue
            if message.get("id") == msg_id:
                if "error" in message:
                    raise CDPError(f"{method}: {message['error'].get('message', 'CDP error')}")
                return message.get("result", {})
            if "method" in message:
                self.events.append(message)

        raise CDPError(f"CDP timeout after {timeout or self.timeout}s ({method})")

    def wait_event(self, method, timeout=None):
        """
        Wait for the next event named `method` and return its params.
        Buffered events are checked first; other events stay buffered.
        """
        for message in list(self.events):
            if message.get("method") == method:
                self.events.remove(message)
                return message.get("params", {})

        if not self.ws:
            raise CDPError(f"Not connected (waiting for {method})")

        deadline = time.monotonic() + (timeout or self.timeout)
        while time.monotonic() < deadline:
            message = self._recv(deadline)
            if message is None:
                continue
            if message.get("method") == method:
                return message.get("params", {})
            if "method" in message:
                self.events.append(message)

        raise CDPError(f"Timeout waiting for event {method}")

    # =========================================================================
    # RUNTIME
    # =========================================================================

    def _checked(self, result):
        details = result.get("exceptionDetails")
        if details:
            raise RemoteEvaluationError(exception_message(details), details=details)
        return result.get("result", {})

    def evaluate(self, expression, await_promise=False, timeout=None):
        """Run JS in the target and return its value (serialized by value)."""
        params = {"expression": expression, "returnByValue": True}
        if await_promise:
            params["awaitPromise"] = True
        result = self.send("Runtime.evaluate", params, timeout=timeout)
        return self._checked(result).get("value")

    def evaluate_handle(self, expression, timeout=None):
        """Run JS and return the remote object id of the result (no serialization)."""
        result = self.send("Runtime.evaluate", {"expression": expression}, timeout=timeout)
        return self._checked(result).get("objectId")

    def await_promise(self, object_id, timeout=None):
        """Wait for a remote promise handle to settle; return its value by value."""
        result = self.send("Runtime.awaitPromise", {
            "promiseObjectId": object_id,
            "returnByValue": True,
        }, timeout=timeout)
        return self._checked(result).get("value")
