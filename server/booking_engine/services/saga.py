"""Minimal saga runner for multi-step booking operations."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..core.config import settings
from ..core.observability import get_logger, metrics_collector

logger = logging.getLogger(__name__)
audit_logger = get_logger("booking_engine.saga.audit")

Action = Callable[[], Awaitable[Any]]
Compensation = Callable[[], Awaitable[None]]


class Saga:
    """
    Ordered steps, each optionally paired with a compensating action.

    A compensation is registered only once its step has succeeded, so a
    failure at step N undoes steps 1..N-1 in reverse order. Compensations are
    retried with exponential backoff; one that still fails after the last
    attempt is logged as a fatal inconsistency and the remaining ones still run.
    """

    def __init__(
        self,
        name: str,
        context: Optional[Dict[str, Any]] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        self.name = name
        self.context = context or {}
        self.max_attempts = max_attempts or settings.compensation_max_attempts
        self.backoff_seconds = (
            settings.compensation_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self.completed_steps: List[str] = []
        self.compensation_failed = False
        self._compensations: List[Tuple[str, Compensation]] = []

    async def step(self, name: str, action: Action, compensation: Optional[Compensation] = None) -> Any:
        """
        Run one step.

        Args:
            name: Step name for logs
            action: Coroutine function performing the step
            compensation: Coroutine function undoing the step

        Returns:
            Whatever ``action`` returns

        Raises:
            Exception: The step's own exception, after earlier steps were compensated
        """
        try:
            result = await action()
        except Exception as exc:
            logger.warning(
                "Saga step failed",
                extra={
                    "saga": self.name,
                    "step": name,
                    "completed_steps": list(self.completed_steps),
                    "error": str(exc),
                    **self.context,
                }
            )
            await self.compensate()
            raise

        self.completed_steps.append(name)
        if compensation is not None:
            self._compensations.append((name, compensation))
        return result

    async def compensate(self) -> bool:
        """Undo completed steps in reverse order. Returns False if any compensation gave up."""
        all_succeeded = True
        while self._compensations:
            name, compensation = self._compensations.pop()
            if not await self._run_compensation(name, compensation):
                all_succeeded = False
        if not all_succeeded:
            self.compensation_failed = True
        return all_succeeded

    async def _run_compensation(self, name: str, compensation: Compensation) -> bool:
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                await compensation()
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Compensation attempt failed",
                    extra={
                        "saga": self.name,
                        "step": name,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "error": str(exc),
                        **self.context,
                    }
                )
                if attempt < self.max_attempts and self.backoff_seconds > 0:
                    await asyncio.sleep(self.backoff_seconds * (2 ** (attempt - 1)))
                continue

            metrics_collector.record_compensation(self.name, succeeded=True)
            audit_logger.info(
                "compensation_completed", saga=self.name, step=name, attempt=attempt, **self.context
            )
            return True

        metrics_collector.record_compensation(self.name, succeeded=False)
        audit_logger.critical(
            "compensation_exhausted",
            saga=self.name,
            step=name,
            attempts=self.max_attempts,
            error=str(last_error),
            **self.context,
        )
        logger.critical(
            "Compensation exhausted; seat inventory may be inconsistent",
            extra={
                "saga": self.name,
                "step": name,
                "attempts": self.max_attempts,
                "error": str(last_error),
                **self.context,
            }
        )
        return False
