"""
errors.py - Exception hierarchy and exit codes for devtools-audit

Every failure is one of four kinds:
  - precondition : the browser / DevTools shape is not what we expect (not retried)
  - transient    : a protocol call failed or threw remotely (retried, bounded)
  - capture      : Lighthouse never reported, or reported garbage
  - resource     : the browser could not be found, launched or reached (aborts the batch)
"""

# Exit codes
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CHROME_NOT_RUNNING = 100


class AuditError(Exception):
    """Base class. `url` is filled in once the error leaves a session."""

    kind = "error"

    def __init__(self, message, url=None):
        super().__init__(message)
        self.url = url


# --- precondition ---

class PreconditionError(AuditError):
    kind = "precondition"


class MethodNotFoundError(PreconditionError):
    def __init__(self, method_name, url=None):
        super().__init__(f"Cannot find method to override: {method_name}", url=url)
        self.method_name = method_name


class InspectorNotFoundError(PreconditionError):
    pass


# --- transient ---

class TransientRemoteError(AuditError):
    kind = "transient"


class CDPError(TransientRemoteError):
    """Transport or protocol failure (socket closed, timeout, {"error": ...} response)."""


class RemoteEvaluationError(TransientRemoteError):
    """Runtime.evaluate returned exceptionDetails."""

    def __init__(self, message, details=None, url=None):
        super().__init__(message, url=url)
        self.details = details or {}


class RetryExhaustedError(TransientRemoteError):
    def __init__(self, message, attempts, last_error=None, url=None):
        super().__init__(message, url=url)
        self.attempts = attempts
        self.last_error = last_error


# --- capture ---

class CaptureError(AuditError):
    kind = "capture"


class SnifferError(AuditError):
    """The observer installed by add_sniffer raised."""

    kind = "capture"


# --- resource ---

class ResourceError(AuditError):
    kind = "resource"


class BrowserNotFoundError(ResourceError):
    pass


class BrowserLaunchError(ResourceError):
    pass
