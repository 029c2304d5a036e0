"""Orchestrator package - state machine driving one upload-and-analysis job."""
from .core import AnalysisOrchestrator
from .transitions import Event, TRANSITIONS, next_state

__all__ = ["AnalysisOrchestrator", "Event", "TRANSITIONS", "next_state"]
