"""Polling of asynchronous relayer tasks until they complete.

Every relayer write hands back a task id. A task can be queried while it is
in flight and disappears once it has finished, so a poller moves through
``SUBMITTED -> POLLING -> COMPLETED`` (or ``TIMED_OUT``).

Two completion checks exist:

* ``ANY_ERROR`` treats any failed status query as completion. This cannot
  tell success from a task that failed and was removed, or from a network
  blip, but it is the behavior relayers have historically been driven with.
* ``STATUS_AWARE`` only accepts a 404 or an explicit ``Completed`` state as
  success, raises on a ``Failed`` state and keeps polling through transport
  errors.
"""

from __future__ import annotations

import asyncio
import time

from enum import StrEnum
from typing import TYPE_CHECKING, NamedTuple

from pydantic import ValidationError

from fee_sweeper.errors import (
    MalformedResponseError,
    RelayerRejected,
    TaskFailedError,
    TaskTimeoutError,
    TransportError,
)
from fee_sweeper.helpers.constants import (
    GET_TASK_STATUS_ROUTE,
    MAX_POLL_SECONDS,
    POLL_INTERVAL_MS,
)
from fee_sweeper.helpers.logging import get_logger
from fee_sweeper.relayer.models import TaskStatusResponse


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fee_sweeper.relayer.auth import RootKey
    from fee_sweeper.relayer.transport import RelayerTransport


logger = get_logger(__name__)

HTTP_NOT_FOUND = 404
COMPLETED_STATES = frozenset({"completed"})
FAILED_STATES = frozenset({"failed"})


class CompletionCheck(StrEnum):
    ANY_ERROR = "any_error"
    STATUS_AWARE = "status_aware"


class TaskState(StrEnum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


class TaskOutcome(NamedTuple):
    task_id: str
    state: TaskState
    polls: int
    detail: str | None = None


class TaskPoller:
    """Waits for relayer tasks to finish.

    Args:
        transport: Relayer transport used for status queries
        poll_interval_ms: Delay between status queries
        max_poll_seconds: Give up and raise after this long
        completion_check: How a finished task is recognised
        clock: Monotonic clock in seconds, injectable for tests
        sleep: Async sleep, injectable for tests
    """

    def __init__(
        self,
        transport: RelayerTransport,
        poll_interval_ms: int = POLL_INTERVAL_MS,
        max_poll_seconds: float = MAX_POLL_SECONDS,
        completion_check: CompletionCheck = CompletionCheck.ANY_ERROR,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.poll_interval = poll_interval_ms / 1000
        self.max_poll_seconds = max_poll_seconds
        self.completion_check = completion_check
        self._clock = clock
        self._sleep = sleep

    async def await_task(
        self, task_id: str, root_key: RootKey | None = None
    ) -> TaskOutcome:
        """Poll ``task_id`` until it completes.

        Cancelling the awaiting coroutine stops the loop between queries.

        Raises:
            TaskTimeoutError: If the task is still running after the max duration
            TaskFailedError: Status-aware mode only, the task reported failure
            RelayerRejected: Status-aware mode only, an unexpected error status
        """
        path = GET_TASK_STATUS_ROUTE.replace(":task_id", task_id)
        started = self._clock()
        polls = 0
        logger.debug("Task %s %s", task_id, TaskState.SUBMITTED)

        while True:
            polls += 1
            detail = await self._poll_once(task_id, path, root_key)
            if detail is not None:
                logger.debug("Task %s %s after %d polls", task_id, TaskState.COMPLETED, polls)
                return TaskOutcome(task_id, TaskState.COMPLETED, polls, detail)

            waited = self._clock() - started
            if waited >= self.max_poll_seconds:
                logger.warning("Task %s %s after %.1fs", task_id, TaskState.TIMED_OUT, waited)
                raise TaskTimeoutError(task_id, waited)

            await self._sleep(self.poll_interval)

    async def _poll_once(
        self, task_id: str, path: str, root_key: RootKey | None
    ) -> str | None:
        """Query once; return a completion detail, or None to keep polling."""
        try:
            response = await self.transport.get(path, root_key)
        except (TransportError, RelayerRejected) as e:
            if self.completion_check is CompletionCheck.ANY_ERROR:
                return f"status query failed: {e}"
            return self._on_query_error(task_id, e)
        except MalformedResponseError as e:
            logger.debug("Task %s returned an unreadable status body: %s", task_id, e)
            return None

        if self.completion_check is CompletionCheck.ANY_ERROR:
            return None
        return self._on_status(task_id, response)

    @staticmethod
    def _on_query_error(task_id: str, error: TransportError | RelayerRejected) -> str | None:
        if isinstance(error, TransportError):
            logger.warning("Task %s status query failed, retrying: %s", task_id, error)
            return None
        if error.status_code == HTTP_NOT_FOUND:
            return "task no longer exists"
        raise error

    @staticmethod
    def _on_status(task_id: str, response: object) -> str | None:
        try:
            status = TaskStatusResponse.model_validate(response).status
        except ValidationError:
            logger.debug("Task %s returned an unrecognised status body", task_id)
            return None

        if status is None or status.state is None:
            return None

        state = status.state.lower()
        if state in FAILED_STATES:
            raise TaskFailedError(task_id, status.description or status.state)
        if state in COMPLETED_STATES:
            return status.description or status.state
        return None


__all__ = ["CompletionCheck", "TaskOutcome", "TaskPoller", "TaskState"]
