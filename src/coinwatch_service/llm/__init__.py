from .client import (
    EMPTY_ANALYSIS,
    AnalysisClientConfig,
    AnalysisProviderError,
    AnalysisResult,
    GeminiAnalysisClient,
    is_overload_error,
)
from .retry import RetryAttempt, RetryExhausted, RetryPolicy, RetryStep, run_with_policy

__all__ = [
    "EMPTY_ANALYSIS",
    "AnalysisClientConfig",
    "AnalysisProviderError",
    "AnalysisResult",
    "GeminiAnalysisClient",
    "is_overload_error",
    "RetryAttempt",
    "RetryExhausted",
    "RetryPolicy",
    "RetryStep",
    "run_with_policy",
]
