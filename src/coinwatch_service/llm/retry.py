from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal, Sequence, TypeVar

T = TypeVar("T")

AttemptOutcome = Literal["success", "failure"]


@dataclass(slots=True, frozen=True)
class RetryStep:
    """One rung of the escalation ladder: an endpoint and how often to try it."""

    name: str
    url: str
    attempts: int = 1
    delay_after_failure_seconds: float = 1.0


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    steps: tuple[RetryStep, ...]

    def __post_init__(self) -> None:
        if not self.steps:
            raise ValueError("RetryPolicy requires at least one step")
        for step in self.steps:
            if step.attempts < 1:
                raise ValueError(f"Retry step {step.name!r} must allow at least one attempt")

    @property
    def max_attempts(self) -> int:
        return sum(step.attempts for step in self.steps)

    def schedule(self) -> list[RetryStep]:
        """Flatten the ladder into one entry per attempt, in order."""
        return [step for step in self.steps for _ in range(step.attempts)]


@dataclass(slots=True)
class RetryAttempt:
    endpoint: str
    attempt_number: int
    outcome: AttemptOutcome
    error: str | None = None


class RetryExhausted(RuntimeError):
    """Raised by ``run_with_policy`` when every scheduled attempt failed."""

    def __init__(self, attempts: Sequence[RetryAttempt], last_error: BaseException | None) -> None:
        self.attempts = list(attempts)
        self.last_error = last_error
        super().__init__(f"All {len(self.attempts)} attempts failed: {last_error}")


@dataclass(slots=True)
class RetryOutcome:
    value: object
    step: RetryStep
    attempts: list[RetryAttempt] = field(default_factory=list)


async def run_with_policy(
    policy: RetryPolicy,
    operation: Callable[[RetryStep], Awaitable[T]],
    *,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    on_failure: Callable[[RetryStep, int, Exception], None] | None = None,
) -> RetryOutcome:
    """
    Run ``operation`` against each scheduled step until one succeeds.

    Attempts are strictly sequential. After a failed attempt the step's delay is
    slept before the next attempt; nothing is slept after the final one.
    Cancellation is not treated as a failed attempt and propagates unchanged.
    """
    sleeper = sleep or asyncio.sleep
    schedule = policy.schedule()
    attempts: list[RetryAttempt] = []
    last_error: Exception | None = None
    for number, step in enumerate(schedule, start=1):
        try:
            value = await operation(step)
        except Exception as exc:
            last_error = exc
            attempts.append(RetryAttempt(step.name, number, "failure", str(exc)))
            if on_failure is not None:
                on_failure(step, number, exc)
            if number < len(schedule) and step.delay_after_failure_seconds > 0:
                await sleeper(step.delay_after_failure_seconds)
            continue
        attempts.append(RetryAttempt(step.name, number, "success"))
        return RetryOutcome(value=value, step=step, attempts=attempts)
    raise RetryExhausted(attempts, last_error)


__all__ = [
    "RetryStep",
    "RetryPolicy",
    "RetryAttempt",
    "RetryExhausted",
    "RetryOutcome",
    "run_with_policy",
]
