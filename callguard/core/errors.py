"""Structured errors for the call-resilience layer.

Every failure a caller of ``callguard`` has to branch on derives from
``ResilienceError``.  Each error keeps its diagnostic context as plain
attributes (duration, attempt count, per-link failures) so the outermost
wrapper's error is enough to diagnose a failure without re-running it.
"""

from __future__ import annotations

from pydantic import BaseModel


class ResilienceError(Exception):
    """Base exception for all callguard errors."""


class CallTimeoutError(ResilienceError, TimeoutError):
    """Raised when an operation does not settle before its deadline.

    Also a builtin ``TimeoutError`` so generic timeout handlers still match.
    """

    def __init__(self, name: str, timeout_seconds: float) -> None:
        self.name = name
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Operation '{name}' timed out after {timeout_seconds}s")


class CircuitOpenError(ResilienceError):
    """Raised when a circuit breaker rejects a call without executing it.

    Attributes:
        name:        Name of the protected dependency.
        retry_after: Seconds until the breaker will admit a probe.
    """

    def __init__(self, name: str, retry_after: float) -> None:
        self.name = name
        self.retry_after = max(0.0, retry_after)
        super().__init__(f"Circuit open for '{name}', retry after {self.retry_after:.1f}s")


class RetryExhaustedError(ResilienceError):
    """Raised when every configured attempt failed with a retriable error.

    The last underlying error is kept on ``last_error`` and is also the
    ``__cause__`` of this exception.
    """

    def __init__(
        self,
        name: str,
        attempts: int,
        last_error: BaseException,
        elapsed_seconds: float = 0.0,
    ) -> None:
        self.name = name
        self.attempts = attempts
        self.last_error = last_error
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"'{name}' failed after {attempts} attempt(s) in {elapsed_seconds:.2f}s: "
            f"{type(last_error).__name__}: {last_error}"
        )


class FallbackExhaustedError(ResilienceError):
    """Raised when every link of a fallback chain failed.

    Attributes:
        name:           Name of the chain.
        attempt_errors: ``(label, error)`` pairs in the order links were tried.
    """

    def __init__(self, name: str, attempt_errors: list[tuple[str, BaseException]]) -> None:
        self.name = name
        self.attempt_errors = list(attempt_errors)
        lines = [f"  - {label}: {type(exc).__name__}: {exc}" for label, exc in self.attempt_errors]
        msg = f"All {len(self.attempt_errors)} link(s) of '{name}' failed"
        if lines:
            msg += ":\n" + "\n".join(lines)
        super().__init__(msg)

    @property
    def errors(self) -> list[BaseException]:
        """The underlying errors, in link order."""
        return [exc for _, exc in self.attempt_errors]


class StructuredErrorResponse(BaseModel):
    """Machine-readable error body: ``{"error", "code", "request_id"}``.

    Never carries a stack trace.
    """

    error: str
    code: str
    request_id: str

    @classmethod
    def from_exception(cls, exc: Exception, request_id: str) -> StructuredErrorResponse:
        """Create from an exception, mapping to machine-readable codes.

        Never leaks internal details for unhandled exceptions.
        """
        if isinstance(exc, CallTimeoutError):
            code = "CALL_TIMEOUT"
        elif isinstance(exc, CircuitOpenError):
            code = "CIRCUIT_OPEN"
        elif isinstance(exc, RetryExhaustedError):
            code = "RETRY_EXHAUSTED"
        elif isinstance(exc, FallbackExhaustedError):
            code = "FALLBACK_EXHAUSTED"
        elif isinstance(exc, ResilienceError):
            code = "RESILIENCE_ERROR"
        else:
            # Unhandled: never expose internal details
            return cls(
                error="An internal error occurred",
                code="INTERNAL_ERROR",
                request_id=request_id,
            )
        return cls(error=str(exc), code=code, request_id=request_id)
