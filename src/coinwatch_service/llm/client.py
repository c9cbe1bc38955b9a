from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Mapping

import httpx

from ..config import Settings, get_settings
from ..observability import record_analysis_attempt
from .retry import RetryAttempt, RetryExhausted, RetryPolicy, RetryStep, run_with_policy

EMPTY_ANALYSIS = "{}"
OVERLOAD_MARKERS = ("503", "Service Unavailable", "overloaded", "UNAVAILABLE")

AnalysisOutcome = Literal["ok", "empty_upstream", "retries_exhausted"]


class AnalysisProviderError(RuntimeError):
    """Raised when the analysis endpoint responds with an error or unreadable payload."""


def is_overload_error(exc: BaseException) -> bool:
    message = str(exc)
    return any(marker in message for marker in OVERLOAD_MARKERS)


@dataclass(slots=True)
class AnalysisClientConfig:
    api_key: str | None
    primary_url: str
    fallback_url: str
    timeout_seconds: float = 30.0
    retry_delay_seconds: float = 1.0
    primary_attempts: int = 2
    fallback_attempts: int = 1

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalysisClientConfig":
        return cls(
            api_key=settings.llm_api_key,
            primary_url=settings.llm_primary_url,
            fallback_url=settings.llm_fallback_url,
            timeout_seconds=settings.llm_timeout_seconds,
            retry_delay_seconds=settings.llm_retry_delay_seconds,
            primary_attempts=settings.llm_primary_attempts,
            fallback_attempts=settings.llm_fallback_attempts,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            steps=(
                RetryStep("primary", self.primary_url, self.primary_attempts, self.retry_delay_seconds),
                RetryStep("fallback", self.fallback_url, self.fallback_attempts, self.retry_delay_seconds),
            )
        )


@dataclass(slots=True)
class AnalysisResult:
    """
    Outcome of one analysis call.

    ``text`` always holds something a JSON parser accepts as a starting point:
    the upstream text on success, otherwise the ``"{}"`` sentinel.
    """

    outcome: AnalysisOutcome
    text: str = EMPTY_ANALYSIS
    endpoint: str | None = None
    attempts: list[RetryAttempt] = field(default_factory=list)
    latency_ms: float | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == "ok"


class GeminiAnalysisClient:
    """
    Calls a generateContent style endpoint with a fixed escalation ladder.

    The default ladder tries the primary endpoint twice and the fallback once,
    sleeping a fixed delay after each failure. ``call`` never raises; callers
    receive ``"{}"`` when no analysis is available.
    """

    def __init__(
        self,
        *,
        config: AnalysisClientConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._config = config or AnalysisClientConfig.from_settings(get_settings())
        self._policy = policy or self._config.retry_policy()
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["x-goog-api-key"] = self._config.api_key
        self._client = http_client or httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(self._config.timeout_seconds),
        )
        self._headers = headers
        self._sleep = sleep or asyncio.sleep
        self._logger = logging.getLogger("coinwatch.llm.gemini")

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def close(self) -> None:
        await self._client.aclose()

    async def call(self, prompt: str) -> str:
        result = await self.call_detailed(prompt)
        return result.text

    async def call_detailed(self, prompt: str) -> AnalysisResult:
        loop = asyncio.get_running_loop()
        start = loop.time()
        try:
            outcome = await run_with_policy(
                self._policy,
                lambda step: self._post(step, prompt),
                sleep=self._sleep,
                on_failure=self._log_failure,
            )
        except RetryExhausted as exc:
            self._logger.error(
                "Analysis provider failed after %s attempts; returning empty analysis: %s",
                len(exc.attempts),
                exc.last_error,
            )
            return AnalysisResult(
                outcome="retries_exhausted",
                attempts=exc.attempts,
                latency_ms=(loop.time() - start) * 1000,
            )

        latency_ms = (loop.time() - start) * 1000
        text = outcome.value
        if text is None:
            self._logger.warning("Analysis provider %s returned no candidate text", outcome.step.name)
            return AnalysisResult(
                outcome="empty_upstream",
                endpoint=outcome.step.name,
                attempts=outcome.attempts,
                latency_ms=latency_ms,
            )
        return AnalysisResult(
            outcome="ok",
            text=str(text),
            endpoint=outcome.step.name,
            attempts=outcome.attempts,
            latency_ms=latency_ms,
        )

    async def _post(self, step: RetryStep, prompt: str) -> str | None:
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            response = await self._client.post(step.url, json=payload, headers=self._headers)
        except httpx.HTTPError:
            record_analysis_attempt(step.name, "failure")
            raise
        if response.status_code >= 400:
            record_analysis_attempt(step.name, "failure")
            raise AnalysisProviderError(
                f"Analysis provider {step.name} error {response.status_code}: {response.text}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            record_analysis_attempt(step.name, "failure")
            raise AnalysisProviderError(f"Analysis provider {step.name} returned invalid JSON") from exc
        text = self._extract_text(data)
        record_analysis_attempt(step.name, "success" if text is not None else "empty")
        return text

    @staticmethod
    def _extract_text(data: Any) -> str | None:
        if not isinstance(data, Mapping):
            return None
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return None
        first = candidates[0]
        content = first.get("content") if isinstance(first, Mapping) else None
        if not isinstance(content, Mapping):
            return None
        parts = content.get("parts")
        if not isinstance(parts, list) or not parts:
            return None
        part = parts[0]
        if not isinstance(part, Mapping) or part.get("text") is None:
            return None
        return str(part["text"])

    def _log_failure(self, step: RetryStep, attempt: int, exc: Exception) -> None:
        if is_overload_error(exc):
            self._logger.warning(
                "Analysis provider %s overloaded (attempt %s/%s): %s",
                step.name,
                attempt,
                self._policy.max_attempts,
                exc,
            )
        else:
            self._logger.warning(
                "Analysis provider %s failed (attempt %s/%s): %s",
                step.name,
                attempt,
                self._policy.max_attempts,
                exc,
            )


__all__ = [
    "AnalysisClientConfig",
    "AnalysisOutcome",
    "AnalysisProviderError",
    "AnalysisResult",
    "EMPTY_ANALYSIS",
    "GeminiAnalysisClient",
    "is_overload_error",
]
