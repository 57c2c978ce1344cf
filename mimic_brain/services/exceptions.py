"""
Error taxonomy for external collaborators.

Transient errors are retried inside the service that raised them and only
reach the caller once retries are exhausted. Permanent errors abort the
turn without retry.
"""


class ServiceError(Exception):
    """Base exception for collaborator failures."""

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")


class TransientServiceError(ServiceError):
    """Network reset, timeout or 5xx response."""

    def __init__(self, service: str, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(service, message)


class RateLimitedError(TransientServiceError):
    """HTTP 429 from the collaborator."""

    def __init__(self, service: str, message: str = "rate limited"):
        super().__init__(service, message, status_code=429)


class PermanentServiceError(ServiceError):
    """Malformed request, auth failure or other non-retryable response."""

    def __init__(self, service: str, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(service, message)


class QuotaExceededError(PermanentServiceError):
    """The account behind the API key has no quota left."""


class SynthesisError(PermanentServiceError):
    """Speech synthesis returned a non-2xx response."""
