"""Base collector abstract class for collection cycles."""

from abc import ABC, abstractmethod
from typing import Any, Optional
import logging
import time
from functools import wraps

from ..utils.metrics import CycleReport, Snapshot


class BaseCollector(ABC):
    """Abstract base class for all collectors."""

    def __init__(self, config: Any, settings: Any, logger: logging.Logger):
        """
        Initialize base collector.

        Args:
            config: Collector-specific configuration
            settings: Collection settings (timeouts, retries)
            logger: Logger instance
        """
        self.config = config
        self.settings = settings
        self.logger = logger.getChild(self.__class__.__name__)

    @abstractmethod
    async def collect(
        self,
        started_at: Optional[float] = None,
        deadline: Optional[float] = None
    ) -> CycleReport:
        """
        Run one collection cycle.

        Args:
            started_at: Cycle start time, used as snapshot generation time
            deadline: Seconds after which unfinished reads are abandoned

        Returns:
            CycleReport: Candidate snapshot and per-target results

        Note:
            Implementations should use @safe_collect so that an unexpected
            error yields an empty report instead of propagating.
        """
        pass


def safe_collect(func):
    """
    Decorator containing unexpected collector errors.

    A failing cycle is logged and turned into an empty CycleReport carrying
    the error, stamped with the cycle start time.

    Args:
        func: Collector method to wrap

    Returns:
        Wrapped coroutine function
    """
    @wraps(func)
    async def wrapper(self, started_at: Optional[float] = None, deadline: Optional[float] = None):
        if started_at is None:
            started_at = time.time()
        try:
            return await func(self, started_at=started_at, deadline=deadline)
        except Exception as e:
            self.logger.error(f"Collection failed: {e}", exc_info=True)
            return CycleReport(
                snapshot=Snapshot.empty(started_at),
                error=f"{type(e).__name__}: {e}"
            )
    return wrapper
