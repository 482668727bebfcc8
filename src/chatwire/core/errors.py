from __future__ import annotations
from typing import Iterable, List, Optional


class ProviderError(Exception):
    """Base class for provider-level failures."""


class ProviderClientError(ProviderError):
    """
    Non-retryable: caller/config issue (unknown provider, bad profile,
    unusable request). The fix is change input/config, not retry.
    """


class ProviderTransientError(ProviderError):
    """
    Retryable: timeouts, refused connections, dropped streams.
    Retrying is the caller's decision; nothing in chatwire retries.
    """


class UnknownProvider(ProviderClientError):
    def __init__(self, name: str, available: Iterable[str]):
        self.name = name
        self.available: List[str] = sorted(available)
        listed = ", ".join(self.available) if self.available else "(none)"
        super().__init__(f"Provider '{name}' is not registered. Available providers: {listed}")


class BackendError(ProviderError):
    """
    The backend answered, but not with something usable: a non-success
    HTTP status, or a body the profile's transforms could not make sense of.
    """

    def __init__(self, message: str, *, status: Optional[int] = None, status_text: str = ""):
        self.status = status
        self.status_text = status_text
        self.message = message
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        # Same split the old SDK classifier used: 429 and 5xx are worth another go
        if self.status is None:
            return False
        return self.status == 429 or 500 <= self.status <= 599


class TransportFailure(ProviderTransientError):
    """Network error or timeout talking to the backend."""


class DecodeSkip(ProviderError):
    """
    One stream line could not be decoded or transformed.
    Raised and caught inside the stream normalizer only.
    """
