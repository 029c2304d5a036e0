"""Orchestrator state machine: events and the transition table."""
from enum import Enum
from typing import Dict, Tuple

from ..errors import InvalidTransition
from ..models import OrchestratorState


class Event(Enum):
    SELECT = "select"
    SELECTION_FAILED = "selection_failed"
    SUBMIT = "submit"
    TRANSFER_DONE = "transfer_done"
    TRANSFER_FAILED = "transfer_failed"
    RECORD_FAILED = "record_failed"
    PROCESSING_DONE = "processing_done"
    PROCESSING_FAILED = "processing_failed"
    POLL_FAILED = "poll_failed"
    FETCH_DONE = "fetch_done"
    FETCH_FAILED = "fetch_failed"
    RETRY_FETCH = "retry_fetch"
    DISPOSE = "dispose"


S = OrchestratorState

TRANSITIONS: Dict[Tuple[OrchestratorState, Event], OrchestratorState] = {
    (S.SELECTING, Event.SELECTION_FAILED): S.FAILED,
    (S.SELECTING, Event.SUBMIT): S.UPLOADING,
    (S.UPLOADING, Event.TRANSFER_DONE): S.PROCESSING,
    (S.UPLOADING, Event.TRANSFER_FAILED): S.FAILED,
    (S.UPLOADING, Event.RECORD_FAILED): S.FAILED,
    # PROCESSING_DONE keeps PROCESSING while the result is fetched
    (S.PROCESSING, Event.PROCESSING_DONE): S.PROCESSING,
    (S.PROCESSING, Event.PROCESSING_FAILED): S.FAILED,
    (S.PROCESSING, Event.POLL_FAILED): S.FAILED,
    (S.PROCESSING, Event.FETCH_DONE): S.COMPLETE,
    (S.PROCESSING, Event.FETCH_FAILED): S.FAILED,
    (S.FAILED, Event.RETRY_FETCH): S.PROCESSING,
}

# select and dispose are accepted from every state
for _state in OrchestratorState:
    TRANSITIONS[(_state, Event.SELECT)] = S.SELECTING
    TRANSITIONS[(_state, Event.DISPOSE)] = S.IDLE


def next_state(state: OrchestratorState, event: Event) -> OrchestratorState:
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state, event) from None
