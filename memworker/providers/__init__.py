"""LLM provider layer: wire formats, fetch discipline and error taxonomy."""

from memworker.providers.base import ProviderResponse
from memworker.providers.client import ProviderClient, build_api_url
from memworker.providers.errors import (
    MalformedResponseError,
    ProviderApiError,
    ProviderCancelledError,
    ProviderError,
    ProviderHttpError,
    ProviderNotConfiguredError,
    ProviderTimeoutError,
)

__all__ = [
    "MalformedResponseError",
    "ProviderApiError",
    "ProviderCancelledError",
    "ProviderClient",
    "ProviderError",
    "ProviderHttpError",
    "ProviderNotConfiguredError",
    "ProviderResponse",
    "ProviderTimeoutError",
    "build_api_url",
]
