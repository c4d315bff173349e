from abc import ABC, abstractmethod
from typing import Callable

class IScheduler(ABC):
    """
    Defines the contract for periodic task runners.
    Engines are registered as plain callbacks and never see how a cadence is
    evaluated, so any timer or cron implementation can stand behind this.
    """

    @abstractmethod
    def register_task(self, name: str, cadence: str, run: Callable[[], object]) -> bool:
        """
        Associates a name and a cadence expression with a zero-argument callback.

        Returns:
            bool: False if the cadence was rejected and the task was not scheduled.
        """
        pass

    @abstractmethod
    def start(self) -> None:
        """Begins firing registered tasks in the background."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Halts future firings. A task already running is left to finish."""
        pass
