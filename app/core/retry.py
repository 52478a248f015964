from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from app.core.config import Settings
from app.core.errors import RetryExhaustedError, TransientActivityError
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Sleeper = Callable[..., Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    first_delay_seconds: float = 5.0
    backoff_coefficient: float = 2.0
    max_delay_seconds: float | None = None
    retry_on: tuple[type[BaseException], ...] = (TransientActivityError,)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.retry_max_attempts),
            first_delay_seconds=settings.retry_first_delay_seconds,
            backoff_coefficient=settings.retry_backoff_coefficient,
            max_delay_seconds=settings.retry_max_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        delay = self.first_delay_seconds * (self.backoff_coefficient ** (attempt - 1))
        if self.max_delay_seconds is not None:
            delay = min(delay, self.max_delay_seconds)
        return delay

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        name: str,
        sleep: Sleeper,
    ) -> T:
        attempts = 0
        while True:
            attempts += 1
            try:
                return await operation()
            except self.retry_on as exc:
                if attempts >= self.max_attempts:
                    logger.warning(
                        "retries exhausted",
                        extra={"extra": {"operation": name, "attempts": attempts, "error": str(exc)}},
                    )
                    raise RetryExhaustedError(name, attempts, exc) from exc
                delay = self.delay_for(attempts)
                logger.info(
                    "transient failure, retrying",
                    extra={
                        "extra": {
                            "operation": name,
                            "attempt": attempts,
                            "delay_seconds": delay,
                            "error": str(exc),
                        }
                    },
                )
                await sleep(delay, name=f"retry:{name}:{attempts}")
