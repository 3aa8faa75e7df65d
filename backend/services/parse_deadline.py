"""
Wall-clock budget for a parse job, checked at stage boundaries
"""

import time
import logging
from typing import Callable, Optional

from services.error_types import ParseTimeoutError

logger = logging.getLogger(__name__)


class ParseDeadline:
    """Tracks elapsed time for one job and aborts before a stage that would start late"""

    def __init__(self, budget_seconds: float, clock: Optional[Callable[[], float]] = None):
        self.budget_seconds = budget_seconds
        self._clock = clock or time.monotonic
        self.started = self._clock()

    @property
    def elapsed_seconds(self) -> float:
        return self._clock() - self.started

    @property
    def elapsed_ms(self) -> int:
        return int(self.elapsed_seconds * 1000)

    def expired(self) -> bool:
        return self.elapsed_seconds >= self.budget_seconds

    def check(self, stage: str) -> None:
        """
        Raises:
            ParseTimeoutError: the budget is spent; `stage` does not start
        """
        if self.expired():
            logger.warning(f"Time budget of {self.budget_seconds:.0f}s exceeded before {stage}")
            raise ParseTimeoutError(
                f"Plan parsing exceeded {self.budget_seconds:.0f}s time budget",
                {"stage": stage, "elapsed_seconds": round(self.elapsed_seconds, 2)}
            )
