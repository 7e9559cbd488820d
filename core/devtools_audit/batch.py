"""
batch.py - Audit a list of URLs one after another

Output layout (the directory is wiped at the start of every run):
  <output_dir>/lhr-0.json, lhr-1.json, ...   one per successful target,
                                             numbered by position in the input
  <output_dir>/failures.json                 only if some target failed
"""

import json
import logging
import shutil
from dataclasses import dataclass, field, asdict
from pathlib import Path

from .config import OUTPUT_DIR
from .errors import AuditError, ResourceError
from .session import run_session
from .status import RunStatus

logger = logging.getLogger(__name__)

FAILURES_FILE = "failures.json"


def parse_targets(lines):
    """Non-empty lines, minus '#' comments, stripped."""
    targets = []
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        targets.append(line)
    return targets


def read_targets(argument=None, stream=None):
    """One URL from the command line, or one per line from stream (until EOF). Never both."""
    if argument is not None and stream is not None:
        raise ValueError("Give a URL argument or a stream of URLs, not both")
    if argument is not None:
        return parse_targets([argument])
    if stream is None:
        raise ValueError("No URL argument and no stream to read URLs from")
    return parse_targets(stream)


def prepare_output_dir(path):
    path = Path(path)
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)
    return path


def report_path(output_dir, index):
    return Path(output_dir) / f"lhr-{index}.json"


def write_report(output_dir, index, report):
    path = report_path(output_dir, index)
    path.write_text(report.text, encoding="utf-8")
    return path


@dataclass
class TargetFailure:
    index: int
    url: str
    kind: str
    message: str

    @classmethod
    def from_error(cls, index, url, error):
        return cls(index, url, getattr(error, "kind", "error"), str(error))


@dataclass
class BatchResult:
    output_dir: Path
    total: int
    written: list = field(default_factory=list)
    failures: list = field(default_factory=list)
    aborted: bool = False

    @property
    def ok(self):
        return not self.failures and not self.aborted


def run_batch(browser, urls, output_dir=OUTPUT_DIR, config=None, fail_fast=True,
              status=None, session_runner=run_session):
    """
    Run session_runner for every URL in order and write the reports.

    fail_fast=True stops at the first failing target (remaining targets are
    not attempted); False records the failure and moves on. A ResourceError
    (browser gone) always stops the batch and is re-raised.
    """
    output_dir = prepare_output_dir(output_dir)
    status = status or RunStatus()
    result = BatchResult(output_dir, len(urls))
    final_status = "aborted"

    status.start(len(urls))
    logger.info(f"Batch of {len(urls)} target(s) -> {output_dir}")
    try:
        for index, url in enumerate(urls):
            status.target_started(index, url)
            try:
                report = session_runner(browser, url, config)
            except ResourceError as e:
                result.failures.append(TargetFailure.from_error(index, url, e))
                status.target_failed(index, url, e)
                logger.error(f"[{index}] {url}: browser failure, aborting batch: {e}")
                result.aborted = True
                raise
            except AuditError as e:
                result.failures.append(TargetFailure.from_error(index, url, e))
                status.target_failed(index, url, e)
                logger.error(f"[{index}] {url} failed ({e.kind}): {e}")
                if fail_fast:
                    result.aborted = True
                    break
                continue

            path = write_report(output_dir, index, report)
            result.written.append(path)
            status.target_done(index, url, path)
            logger.info(f"[{index}] {url} -> {path}")
        else:
            final_status = "done" if not result.failures else "done_with_failures"
    finally:
        if result.failures:
            with open(output_dir / FAILURES_FILE, "w") as f:
                json.dump([asdict(x) for x in result.failures], f, indent=2)
        status.finish(final_status)

    return result
