"""Progress tracking for multi-backend entry writes.

A write walks blob store → version repository → metadata rows with no shared
transaction. :class:`EntrySaga` records how far it got and which compensating
actions to run if a later step fails.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from enum import Enum

LOGGER = logging.getLogger(__name__)


class SagaState(str, Enum):
    INIT = "init"
    BLOB_WRITTEN = "blob_written"
    COMMITTED = "committed"
    METADATA_WRITTEN = "metadata_written"
    VERSION_RECORDED = "version_recorded"
    FAILED = "failed"


_TRANSITIONS: dict[SagaState, set[SagaState]] = {
    SagaState.INIT: {SagaState.BLOB_WRITTEN, SagaState.FAILED},
    SagaState.BLOB_WRITTEN: {SagaState.COMMITTED, SagaState.FAILED},
    SagaState.COMMITTED: {SagaState.METADATA_WRITTEN, SagaState.FAILED},
    SagaState.METADATA_WRITTEN: {SagaState.VERSION_RECORDED},
    SagaState.VERSION_RECORDED: set(),
    SagaState.FAILED: set(),
}

Compensation = Callable[[], Awaitable[None]]


class SagaError(RuntimeError):
    pass


class EntrySaga:
    """Ordered steps with best-effort compensation.

    Used as an async context manager around the fatal steps: an exception
    escaping the block moves the saga to ``FAILED`` and runs the registered
    compensations newest first. Compensation failures are logged and never
    replace the original exception. Once metadata is written the saga can no
    longer fail; recording the version row is optional.
    """

    def __init__(self, name: str):
        self.name = name
        self.state = SagaState.INIT
        self.history: list[SagaState] = [SagaState.INIT]
        self._compensations: list[tuple[str, Compensation]] = []
        LOGGER.debug("Saga %s started", name, extra={"saga_state": self.state.value})

    def advance(self, state: SagaState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise SagaError(f"{self.name}: cannot move from {self.state.value} to {state.value}")
        self.state = state
        self.history.append(state)
        LOGGER.debug("Saga %s -> %s", self.name, state.value, extra={"saga_state": state.value})

    def on_failure(self, label: str, action: Compensation) -> None:
        self._compensations.append((label, action))

    async def fail(self, exc: BaseException) -> None:
        if self.state in (SagaState.METADATA_WRITTEN, SagaState.VERSION_RECORDED):
            return
        failed_at = self.state
        self.advance(SagaState.FAILED)
        LOGGER.warning("Saga %s failed after %s: %s", self.name, failed_at.value, exc)
        for label, action in reversed(self._compensations):
            try:
                await action()
            except Exception:
                LOGGER.exception("Saga %s compensation %s failed", self.name, label)
        self._compensations.clear()

    async def __aenter__(self) -> EntrySaga:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is not None and self.state is not SagaState.FAILED:
            await self.fail(exc)
        return False

    @property
    def failed(self) -> bool:
        return self.state is SagaState.FAILED
