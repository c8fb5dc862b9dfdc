"""Provider error taxonomy.

Timeouts and cancellations propagate as typed exceptions up to the session
driver; HTTP-level failures carry the status and body for fallback decisions.
"""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for every failure raised by the provider layer."""


class ProviderNotConfiguredError(ProviderError):
    """Endpoint or API key missing."""


class ProviderTimeoutError(ProviderError, TimeoutError):
    """First-byte or total-duration timeout fired before the body was read."""

    def __init__(self, phase: str, timeout: float) -> None:
        self.phase = phase
        self.timeout = timeout
        super().__init__(f"Request timeout ({phase} after {timeout:g}s)")


class ProviderCancelledError(ProviderError):
    """The caller's cancellation signal fired; never retried."""


class ProviderHttpError(ProviderError):
    """Non-2xx response from the provider."""

    def __init__(self, status: int, body: str, *, label: str = "Custom") -> None:
        self.status = status
        self.body = body
        super().__init__(f"{label} API error: {status} - {body}")


class ProviderApiError(ProviderHttpError):
    """A 2xx response whose payload is itself an ``{"error": ...}`` object."""

    def __init__(self, status: int, message: str, *, label: str = "Custom") -> None:
        self.status = status
        self.body = message
        ProviderError.__init__(self, f"{label} API error: {message}")


class MalformedResponseError(ProviderError):
    """Body was not valid JSON where JSON was mandatory."""

    def __init__(self, status: int, detail: str, *, label: str = "Custom") -> None:
        self.status = status
        self.detail = detail
        super().__init__(f"{label} returned an unparseable body (status {status}): {detail}")
