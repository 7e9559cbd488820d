"""
cli.py - devtools-audit command line

Usage:
    devtools-audit https://example.com            # one URL
    devtools-audit < urls.txt                     # one URL per line, '#' = comment
    devtools-audit --continue-on-error < urls.txt # keep going after a failed URL
    devtools-audit --attach https://example.com   # reuse Chrome already on --port

Reports land in $OUTPUT_DIR (default latest-run/devtools-lhrs) as lhr-<N>.json.

Exit codes:
    0   all URLs audited
    1   at least one URL failed, or bad usage
    100 Chrome not found / not running / failed to launch
"""

import argparse
import logging
import sys

from .batch import read_targets, run_batch
from .browser import Browser
from .config import CDP_PORT, OUTPUT_DIR, PANEL_NAME, RetryPolicy, SessionConfig
from .errors import EXIT_CHROME_NOT_RUNNING, EXIT_ERROR, EXIT_OK, ResourceError
from .status import RunStatus

logger = logging.getLogger("devtools_audit")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="devtools-audit",
        description="Run Lighthouse from the Chrome DevTools panel and save the reports")
    parser.add_argument("url", nargs="?",
                        help="URL to audit (default: read URLs from stdin)")
    parser.add_argument("-o", "--output-dir", default=OUTPUT_DIR)
    parser.add_argument("--continue-on-error", action="store_true",
                        help="record a failed URL and go on with the next one")
    parser.add_argument("--attach", action="store_true",
                        help="use a Chrome already listening on --port instead of launching one")
    parser.add_argument("--chrome-path", default=None,
                        help="browser executable (default: $CHROME_PATH, then auto-detect)")
    parser.add_argument("--port", type=int, default=CDP_PORT)
    parser.add_argument("--panel", default=PANEL_NAME)
    parser.add_argument("--disable-js-on-load", action="store_true",
                        help="load the page with JavaScript off, turn it back on for the audit")
    parser.add_argument("--max-attempts", type=int, default=RetryPolicy.max_attempts,
                        help="attempts to start the audit before giving up")
    parser.add_argument("--start-timeout", type=float, default=RetryPolicy.timeout)
    parser.add_argument("--capture-timeout", type=float, default=SessionConfig.capture_timeout,
                        help="seconds to wait for the report once the audit started")
    parser.add_argument("--no-redis", action="store_true", help="do not publish run status")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv=None, stdin=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [DEVTOOLS] %(levelname)s: %(message)s'
    )

    if args.url:
        urls = read_targets(args.url)
    else:
        urls = read_targets(stream=stdin or sys.stdin)
    if not urls:
        logger.error("No URL to audit")
        return EXIT_ERROR

    config = SessionConfig(
        panel=args.panel,
        disable_js_on_load=args.disable_js_on_load,
        capture_timeout=args.capture_timeout,
        start_policy=RetryPolicy(max_attempts=args.max_attempts, timeout=args.start_timeout),
    )
    status = RunStatus() if args.no_redis else RunStatus.connect()

    try:
        if args.attach:
            browser = Browser.attach(port=args.port)
        else:
            browser = Browser.launch(args.chrome_path, port=args.port)
    except ResourceError as e:
        logger.error(f"Browser unavailable: {e}")
        return EXIT_CHROME_NOT_RUNNING

    try:
        with browser:
            result = run_batch(browser, urls, args.output_dir, config,
                               fail_fast=not args.continue_on_error, status=status)
    except ResourceError as e:
        logger.error(f"Batch aborted, browser failure on {e.url}: {e}")
        return EXIT_CHROME_NOT_RUNNING
    except KeyboardInterrupt:
        logger.warning("Interrupted, browser closed")
        return EXIT_ERROR

    for failure in result.failures:
        logger.error(f"FAILED [{failure.index}] {failure.url} ({failure.kind}): {failure.message}")
    print(f"{len(result.written)}/{result.total} report(s) written to {result.output_dir}")
    return EXIT_OK if result.ok else EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
