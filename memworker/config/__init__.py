"""Configuration module for memworker."""

from memworker.config.schema import ModeConfig, ObservationType, ProviderConfig

__all__ = ["ModeConfig", "ObservationType", "ProviderConfig"]
