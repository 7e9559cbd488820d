#!/usr/bin/env python3
"""
devtools-audit.py - Run Lighthouse from the DevTools panel for one or many URLs

Usage:
    python3 scripts/devtools-audit.py https://example.com
    python3 scripts/devtools-audit.py --continue-on-error < urls.txt

Same as the `devtools-audit` command installed by pip; see core/devtools_audit/cli.py.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'core'))

from devtools_audit.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
