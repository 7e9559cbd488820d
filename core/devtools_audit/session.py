"""
session.py - Run Lighthouse from the DevTools panel for one URL

Per target:
  1. open a tab + its DevTools window (browser.page())
  2. navigate the tab, Runtime.enable on the DevTools frontend,
     wait for DOMContentLoaded
  3. start Lighthouse from its panel, retrying while the panel is not ready
  4. sniff the panel's report method and await the report
  5. close everything, whatever happened
"""

import json
import logging
import time
from dataclasses import dataclass

from .cdp import CDP
from .config import PANEL_NAME, REPORT_METHOD, RetryPolicy, SessionConfig
from .errors import (AuditError, CaptureError, CDPError, MethodNotFoundError,
                     PreconditionError, RemoteEvaluationError, RetryExhaustedError,
                     TransientRemoteError)
from .sniffer import sniff_expression

logger = logging.getLogger(__name__)

# a start attempt made right at the deadline still gets this long to answer
MIN_ATTEMPT_TIMEOUT = 1.0


def start_expression(panel=PANEL_NAME):
    """JS that opens the panel view and clicks its start button; throws while not ready."""
    name = json.dumps(panel)
    return f"""
(() => {{
  UI.ViewManager.instance().showView({name});
  const panel = UI.panels[{name}];
  if (!panel) throw new Error('Panel not ready: ' + {name});
  const button = panel.contentElement.querySelector('button');
  if (!button) throw new Error('Start button not found');
  if (button.disabled) throw new Error('Start button disabled');
  button.click();
  return true;
}})()
"""


@dataclass(frozen=True)
class CapturedReport:
    """The report as received (JSON text, written verbatim) and parsed."""
    text: str
    data: dict

    @classmethod
    def from_value(cls, value):
        if not isinstance(value, str) or not value.strip():
            raise CaptureError("Problem sniffing report: empty value")
        try:
            data = json.loads(value)
        except ValueError as e:
            raise CaptureError(f"Problem sniffing report: invalid JSON ({e})") from e
        if not isinstance(data, dict):
            raise CaptureError(f"Problem sniffing report: expected an object, got {type(data).__name__}")
        return cls(value, data)

    @property
    def requested_url(self):
        return self.data.get("requestedUrl")

    @property
    def lighthouse_version(self):
        return self.data.get("lighthouseVersion")


def start_tool(cdp, panel=PANEL_NAME, policy=None, sleep=time.sleep, clock=time.monotonic):
    """
    Evaluate the start snippet until it runs without throwing.

    Both remote exceptions (panel not ready, button disabled) and transport
    failures count as failed attempts.

    Returns:
        int: number of attempts used (failures + the successful one).

    Raises:
        RetryExhaustedError: max_attempts or the policy timeout reached.
    """
    policy = policy or RetryPolicy()
    expression = start_expression(panel)
    delays = policy.delays()
    deadline = clock() + policy.timeout
    attempt = 0
    last_error = None

    while True:
        attempt += 1
        try:
            remaining = max(deadline - clock(), MIN_ATTEMPT_TIMEOUT)
            cdp.evaluate(expression, timeout=min(remaining, cdp.timeout))
            logger.info(f"Lighthouse started (attempt {attempt})")
            return attempt
        except TransientRemoteError as e:
            last_error = e
            logger.debug(f"Start attempt {attempt} failed: {e}")

        delay = next(delays, None)
        if delay is None or clock() + delay > deadline:
            raise RetryExhaustedError(
                f"Lighthouse did not start after {attempt} attempts: {last_error}",
                attempts=attempt, last_error=last_error)
        sleep(delay)


def capture_report(cdp, panel=PANEL_NAME, method=REPORT_METHOD, timeout=300.0):
    """
    Sniff UI.panels[panel].__proto__[method] and wait for the report it receives.

    Raises:
        MethodNotFoundError: the panel has no such method (DevTools changed).
        CaptureError: no promise, never fired within timeout, or bad value.
    """
    receiver = f"UI.panels[{json.dumps(panel)}].__proto__"
    try:
        object_id = cdp.evaluate_handle(sniff_expression(receiver, method))
    except TransientRemoteError as e:
        raise CaptureError(f"Problem creating report sniffer: {e}") from e
    if not object_id:
        raise CaptureError("Problem creating report sniffer: no promise handle")

    try:
        value = cdp.await_promise(object_id, timeout=timeout)
    except RemoteEvaluationError as e:
        if "Cannot find method to override" in str(e):
            raise MethodNotFoundError(method) from e
        raise CaptureError(f"Problem sniffing report: {e}") from e
    except CDPError as e:
        raise CaptureError(f"Report never arrived: {e}") from e

    return CapturedReport.from_value(value)


def run_session(browser, url, config=None, cdp_factory=CDP):
    """
    Audit one URL and return its CapturedReport.

    Any AuditError raised leaves with err.url set to `url`.
    """
    config = config or SessionConfig()
    logger.info(f"Auditing {url}")
    opening_url = "about:blank" if config.navigate else url
    host, port = browser.host, browser.port

    try:
        with browser.page(opening_url, inspector_timeout=config.inspector_timeout) as page, \
                cdp_factory(page.ws_url(host, port), timeout=config.command_timeout) as tab, \
                cdp_factory(page.inspector_ws_url(host, port), timeout=config.command_timeout) as inspector:

            if config.disable_js_on_load:
                # Some pages never settle with scripts on (cnn.com); only the load is scriptless
                tab.send("Emulation.setScriptExecutionDisabled", {"value": True})

            if config.navigate:
                tab.send("Page.enable")
                nav = tab.send("Page.navigate", {"url": url})
                if nav.get("errorText"):
                    raise PreconditionError(f"Navigation failed: {nav['errorText']}")

            inspector.send("Runtime.enable")

            if config.navigate:
                tab.wait_event("Page.domContentEventFired", timeout=config.load_timeout)

            if config.disable_js_on_load:
                tab.send("Emulation.setScriptExecutionDisabled", {"value": False})

            attempts = start_tool(inspector, config.panel, config.start_policy)
            report = capture_report(inspector, config.panel, config.report_method,
                                    config.capture_timeout)

            try:
                inspector.send("Runtime.disable")
            except CDPError as e:
                logger.debug(f"Runtime.disable failed: {e}")
    except AuditError as e:
        if e.url is None:
            e.url = url
        raise

    logger.info(f"Captured report for {url} ({len(report.text)} bytes, "
                f"{attempts} start attempt(s))")
    return report
