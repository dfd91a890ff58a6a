"""Errors raised by provider adapters and handled by the services."""

from enum import Enum
from typing import Optional


class ProviderErrorKind(str, Enum):
    """Coarse classification of a provider failure."""

    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"

    @classmethod
    def from_status_code(cls, status_code: Optional[int]) -> "ProviderErrorKind":
        """Map an HTTP status code to an error kind."""
        if status_code in (401, 403):
            return cls.AUTH
        if status_code == 429:
            return cls.RATE_LIMIT
        if status_code == 404:
            return cls.NOT_FOUND
        return cls.UNKNOWN


class SegmentationError(Exception):
    """Story segmentation through a provider failed."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.message = message
        self.provider = provider
        super().__init__(message)


class ProviderError(Exception):
    """A provider call failed."""

    def __init__(
        self,
        message: str,
        kind: ProviderErrorKind = ProviderErrorKind.UNKNOWN,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.kind = kind
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        prefix = f"[{self.provider}] " if self.provider else ""
        return f"{prefix}{self.message}"


class ProviderTimeoutError(ProviderError):
    """A long-running provider job did not finish within its poll budget."""

    def __init__(self, message: str, provider: Optional[str] = None, attempts: int = 0):
        self.attempts = attempts
        super().__init__(message, kind=ProviderErrorKind.UNKNOWN, provider=provider)
