"""
Error taxonomy for the generation pipeline and the AI provider client.

Every failure that leaves a component carries a machine-readable ``kind``
so the HTTP layer can map it to a response and the scheduler can record it
as the topic's last_error.
"""
from typing import Optional


class AutoblogError(Exception):
    """Base class for all application errors."""

    kind = "error"

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if kind:
            self.kind = kind

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ConfigurationError(AutoblogError):
    """Missing or invalid credentials/settings. Never retried."""

    kind = "missing_api_key"


class ProviderError(AutoblogError):
    """Failure talking to the AI provider."""

    kind = "api_error"
    retryable = False

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, kind)
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class TransientProviderError(ProviderError):
    """Rate limit, 5xx or transport failure that survived every retry."""

    kind = "network_error"
    retryable = True


class PermanentProviderError(ProviderError):
    """Quota, auth, unknown model or other 4xx. Returned without retry."""

    kind = "api_error"


class ContentQualityError(AutoblogError):
    """The provider answered but the answer is unusable (e.g. empty)."""

    kind = "empty_content"


class PersistenceError(AutoblogError):
    """Writing to the content store failed."""

    kind = "persistence"


class JobNotFoundError(AutoblogError):
    kind = "job_not_found"


class JobBusyError(AutoblogError):
    kind = "job_busy"


class MissingPrerequisiteError(AutoblogError):
    kind = "missing_prerequisite"


class StepError(AutoblogError):
    kind = "invalid_step"


class TrendsError(AutoblogError):
    """The trending-topics feed could not be fetched or parsed."""

    kind = "trends_unavailable"
