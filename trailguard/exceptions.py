"""Exception hierarchy for the audit trail pipeline.

All errors inherit from TrailguardError. The retry executor relies on the
RetryableError / TerminalError split; everything else is classified by
RetryClassifier.
"""


class TrailguardError(Exception):
    """Base exception for all trailguard errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(TrailguardError):
    """Raised when required configuration is missing or invalid.

    Fatal: a signer without a secret refuses to sign anything.
    """


class VerificationError(TrailguardError):
    """Raised when a record cannot be verified at all (malformed data).

    Local to one record. Batch verification and integrity scans catch it
    and mark that record invalid.
    """

    def __init__(self, message: str, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class RetryableError(TrailguardError):
    """Raised for failures that are known to be transient."""


class TerminalError(TrailguardError):
    """Raised for failures that must never be retried."""


class EventValidationError(TerminalError):
    """Raised when an event payload fails validation."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class UpstreamHTTPError(TrailguardError):
    """Raised when an outbound HTTP call returns an error status.

    Retryability depends on status_code.
    """

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class DispatchError(TrailguardError):
    """Raised when the queue broker cannot accept work."""

    def __init__(self, message: str, queue: str | None = None) -> None:
        super().__init__(message)
        self.queue = queue


class RemediationError(TrailguardError):
    """Raised when a privileged remediation action fails or is refused."""

    def __init__(self, message: str, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id
