"""Run state machine and cooperative cancellation."""

from __future__ import annotations

import threading
from typing import Literal

from lotabots.core.exceptions import PipelineError
from lotabots.models.pipeline import PipelineEvent, PipelineState, Stage

# START -> FETCHING -> QUANTIZING -> UPLOADING -> DONE, FAILED from any non-terminal state.
_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.START: frozenset({PipelineState.FETCHING, PipelineState.FAILED}),
    PipelineState.FETCHING: frozenset({PipelineState.QUANTIZING, PipelineState.FAILED}),
    PipelineState.QUANTIZING: frozenset({PipelineState.UPLOADING, PipelineState.FAILED}),
    PipelineState.UPLOADING: frozenset({PipelineState.DONE, PipelineState.FAILED}),
    PipelineState.DONE: frozenset(),
    PipelineState.FAILED: frozenset(),
}


class RunStateMachine:
    """Linear state tracker for one run, recording every transition as an event."""

    def __init__(self) -> None:
        self.state = PipelineState.START
        self.events: list[PipelineEvent] = []

    @property
    def terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    def advance(self, new_state: PipelineState, message: str, stage: Stage | None = None,
                level: Literal["info", "warning", "error"] = "info") -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise PipelineError(f"Illegal pipeline transition {self.state} -> {new_state}")
        self.state = new_state
        self.record(message, stage=stage, level=level)

    def record(self, message: str, stage: Stage | None = None,
               level: Literal["info", "warning", "error"] = "info") -> None:
        self.events.append(PipelineEvent(state=self.state, stage=stage, message=message, level=level))

    def extend(self, events: list[PipelineEvent]) -> None:
        self.events.extend(events)


class CancellationToken:
    """Cooperative cancellation, honoured between stages only."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
