# devtools-audit
# Run Lighthouse from the DevTools panel over CDP and collect the reports

from .batch import BatchResult, read_targets, run_batch
from .browser import Browser
from .sniffer import add_sniffer, next_call
from .session import CapturedReport, run_session

__all__ = ['Browser', 'BatchResult', 'CapturedReport', 'add_sniffer', 'next_call',
           'read_targets', 'run_batch', 'run_session']
__version__ = '1.0.0'
