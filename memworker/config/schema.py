"""Configuration schema for the memory worker."""

from __future__ import annotations

import math
import os
from typing import Callable, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

ProviderProtocol = Literal["openai", "gemini"]

CredentialLookup = Callable[[str], Optional[str]]

# Flat settings keys understood by ProviderConfig.from_settings
SETTINGS_PREFIX = "MEMWORKER_CUSTOM_"
FALLBACK_CREDENTIAL = "CUSTOM_API_KEY"
DEFAULT_MODEL = "gpt-4o"


def _resolve_env(value: str) -> str:
    """Resolve ``$VAR`` / ``${VAR}`` indirection against the environment.

    Plain values are returned unchanged; unknown variables resolve to "".
    """
    if not value:
        return value
    stripped = value.strip()
    if stripped.startswith("${") and stripped.endswith("}"):
        return os.environ.get(stripped[2:-1], "")
    if stripped.startswith("$") and len(stripped) > 1:
        return os.environ.get(stripped[1:], "")
    return value


def parse_protocol(value: str | None) -> ProviderProtocol:
    """Normalize a protocol setting; anything unrecognized means ``openai``."""
    normalized = (value or "").strip().lower()
    if normalized == "gemini":
        return "gemini"
    return "openai"


def parse_optional_positive_int(value: str | int | None) -> int:
    """Parse a limit where 0 means disabled; junk and negatives become 0."""
    if value is None:
        return 0
    if isinstance(value, int):
        return max(0, value)
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return 0
    return max(0, parsed)


def parse_optional_positive_float(value: str | float | None) -> float:
    """Parse a timeout in seconds where 0 means disabled; junk and negatives become 0."""
    if value is None:
        return 0.0
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return 0.0
    if not math.isfinite(parsed):
        return 0.0
    return max(0.0, parsed)


class ProviderConfig(BaseModel):
    """Immutable per-call provider settings."""

    model_config = ConfigDict(frozen=True)

    api_url: str = ""
    api_key: str = ""
    model: str = DEFAULT_MODEL
    protocol: ProviderProtocol = "openai"
    streaming: bool = True
    max_context_messages: int = Field(default=0, ge=0)  # 0 = unlimited
    max_tokens: int = Field(default=0, ge=0)  # 0 = unlimited
    first_token_timeout_seconds: float = Field(default=0, ge=0)  # 0 = disabled
    total_timeout_seconds: float = Field(default=0, ge=0)  # 0 = disabled
    max_retries: int = Field(default=3, ge=1)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    @classmethod
    def from_settings(
        cls,
        settings: Mapping[str, str],
        get_credential: CredentialLookup | None = None,
    ) -> ProviderConfig:
        """Build a config from a flat settings mapping.

        The API key comes from the settings (``$VAR`` indirection allowed) and
        falls back to the ``CUSTOM_API_KEY`` credential.
        """

        def _get(name: str) -> str:
            return str(settings.get(SETTINGS_PREFIX + name) or "")

        return cls(
            api_url=_get("API_URL").strip(),
            api_key=_resolve_api_key(_get("API_KEY"), get_credential),
            model=_get("MODEL").strip() or DEFAULT_MODEL,
            protocol=parse_protocol(_get("PROTOCOL")),
            streaming=_get("STREAMING").strip().lower() != "false",
            max_context_messages=parse_optional_positive_int(_get("MAX_CONTEXT_MESSAGES")),
            max_tokens=parse_optional_positive_int(_get("MAX_TOKENS")),
            first_token_timeout_seconds=parse_optional_positive_float(_get("FIRST_TOKEN_TIMEOUT")),
            total_timeout_seconds=parse_optional_positive_float(_get("TOTAL_TIMEOUT")),
        )


def _resolve_api_key(raw: str, get_credential: CredentialLookup | None) -> str:
    key = _resolve_env(raw).strip()
    if key:
        return key
    if get_credential is None:
        return ""
    return (get_credential(FALLBACK_CREDENTIAL) or "").strip()


def is_provider_available(
    settings: Mapping[str, str],
    get_credential: CredentialLookup | None = None,
) -> bool:
    """True when both an endpoint and a resolvable API key are configured."""
    return ProviderConfig.from_settings(settings, get_credential).is_configured


class ObservationType(BaseModel):
    """One entry of the observation-type whitelist."""

    id: str
    description: str = ""


class ModeConfig(BaseModel):
    """Active mode: observation-type whitelist plus prompt fragments."""

    name: str = "code"
    observation_types: list[ObservationType] = Field(default_factory=list)
    prompts: dict[str, str] = Field(default_factory=dict)

    @property
    def valid_types(self) -> list[str]:
        return [t.id for t in self.observation_types]

    def prompt(self, key: str) -> str:
        return self.prompts.get(key, "")
