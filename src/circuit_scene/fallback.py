"""
Ordered fallback over candidate sources.

``attempt_in_order`` tries candidates strictly in list order and yields a
tagged result for each one. ``first_success`` stops at the first success
and otherwise raises with every collected failure.
"""
from dataclasses import dataclass
from typing import (
    AsyncIterator, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar,
)

C = TypeVar("C")
T = TypeVar("T")


@dataclass
class Attempt(Generic[C, T]):
    candidate: C
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def attempt_in_order(
    candidates: Sequence[C],
    attempt: Callable[[C], Awaitable[T]],
) -> AsyncIterator[Attempt]:
    for candidate in candidates:
        try:
            value = await attempt(candidate)
        except Exception as e:
            yield Attempt(candidate=candidate, error=e)
        else:
            yield Attempt(candidate=candidate, value=value)


async def first_success(
    candidates: Sequence[C],
    attempt: Callable[[C], Awaitable[T]],
    on_exhausted: Callable[[List[Attempt]], Exception],
) -> T:
    """Value of the first candidate whose attempt succeeds.

    Raises:
        The exception built by ``on_exhausted`` from all failed attempts.
    """
    failures: List[Attempt] = []
    async for result in attempt_in_order(candidates, attempt):
        if result.ok:
            return result.value
        failures.append(result)
    raise on_exhausted(failures)
