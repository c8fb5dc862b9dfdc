"""Observation agent and the collaborator interfaces it depends on."""

from memworker.agent.types import ActiveSession, PendingMessage, TurnRecord
from memworker.agent.worker import ObservationAgent, should_fallback

__all__ = ["ActiveSession", "ObservationAgent", "PendingMessage", "TurnRecord", "should_fallback"]
