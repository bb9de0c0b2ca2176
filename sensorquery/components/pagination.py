"""
Cursor/page walking with bounded retry.

One fetch loop serves both cursor shapes: a ``RangeCursor`` walk ends when
the step function hands back no next cursor, a ``PageCursor`` walk ends
once the accumulated count reaches the server-reported total. Failures
run through ``RetryState``, a small state machine whose transitions are
``Success``, ``Retry(delay)``, ``Exhausted`` and ``Abort``.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

from sensorquery.config import RetryPolicy
from sensorquery.models import Cursor, Outcome, PageCursor, StepResult
from sensorquery.utils import (
    MalformedResponse,
    PipelineObserver,
    RetrievalExhausted,
    SensorQueryError,
    TransientFailure,
)

StepFunction = Callable[[Cursor], Awaitable[StepResult]]
SleepFunction = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class Success:
    pass


@dataclass(frozen=True)
class Retry:
    delay: float


@dataclass(frozen=True)
class Exhausted:
    attempts: int


@dataclass(frozen=True)
class Abort:
    pass


Transition = Union[Success, Retry, Exhausted, Abort]


class RetryState:
    """Retry bookkeeping for a single fetch loop."""

    def __init__(self, policy: RetryPolicy):
        self.policy = policy
        self.attempt = 0

    @property
    def budget(self) -> int:
        return self.policy.max_attempts

    def transition(self, outcome: Outcome) -> Transition:
        """
        Advance the state for one step outcome.

        Only transient failures consume budget. The failure that brings the
        count to ``budget`` yields ``Exhausted`` instead of another retry.
        """
        if outcome is Outcome.SUCCESS:
            return Success()
        if outcome is Outcome.FATAL_FAILURE:
            return Abort()

        self.attempt += 1
        if self.attempt >= self.budget:
            return Exhausted(self.attempt)
        return Retry(self.policy.delay_for(self.attempt))


class PaginatedFetcher:
    """Drives a step function across cursor positions and concatenates the pages."""

    def __init__(
        self,
        policy: RetryPolicy,
        observer: Optional[PipelineObserver] = None,
        sleep: SleepFunction = asyncio.sleep,
    ):
        self.policy = policy
        self.observer = observer or PipelineObserver()
        self.sleep = sleep

    async def _attempt(self, step: StepFunction, cursor: Cursor) -> Tuple[StepResult, Optional[SensorQueryError]]:
        try:
            return await step(cursor), None
        except TransientFailure as e:
            return StepResult(outcome=Outcome.TRANSIENT_FAILURE, detail=str(e)), e
        except MalformedResponse as e:
            return StepResult(outcome=Outcome.FATAL_FAILURE, detail=str(e)), e

    async def fetch(
        self,
        step: StepFunction,
        initial_cursor: Cursor,
        source: str = "fetch",
        max_records: Optional[int] = None,
    ) -> List[Any]:
        """
        Walk every page reachable from ``initial_cursor``.

        Args:
            step: Async function fetching one page for a cursor
            initial_cursor: Where the walk starts
            source: Name reported to the observer
            max_records: Stop once at least this many records were collected

        Returns:
            Records of all pages, in page order

        Raises:
            RetrievalExhausted: If the retry budget is used up
            MalformedResponse: On a fatal step outcome
        """
        records: List[Any] = []
        state = RetryState(self.policy)
        cursor: Optional[Cursor] = initial_cursor

        while cursor is not None and cursor.has_more(len(records)):
            result, error = await self._attempt(step, cursor)
            transition = state.transition(result.outcome)

            if isinstance(transition, Retry):
                self.observer.on_retry(
                    source, state.attempt, transition.delay,
                    error or TransientFailure(result.detail),
                )
                await self.sleep(transition.delay)
                continue

            if isinstance(transition, Exhausted):
                self.observer.on_exhausted(source, transition.attempts)
                raise RetrievalExhausted(
                    f"Max retries reached while fetching {source}: {result.detail}",
                    attempts=transition.attempts,
                )

            if isinstance(transition, Abort):
                if error is not None:
                    raise error
                raise MalformedResponse(f"{source}: {result.detail or 'server reported failure'}")

            records.extend(result.records)
            self.observer.on_page(source, len(result.records), len(records))

            next_cursor = result.next_cursor
            if (
                isinstance(next_cursor, PageCursor)
                and not result.records
                and next_cursor.has_more(len(records))
            ):
                raise MalformedResponse(
                    f"{source}: empty page {cursor.page} with {len(records)}/"
                    f"{next_cursor.total_count} items collected"
                )

            cursor = next_cursor
            if max_records is not None and len(records) >= max_records:
                break

        return records
