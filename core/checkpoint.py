import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from core.clock import Clock, SystemClock, format_time, parse_time
from core.exceptions import CheckpointError
from core.logging_config import LoggerMixin

class ICheckpoint(ABC):
    """
    Durable record of the last time every user's traffic was reset.
    The traffic reset engine trusts this record, not process memory, so that
    a restart never causes a second reset within the same month.
    """

    @abstractmethod
    def load(self) -> datetime:
        """
        Returns the stored reset time.

        A missing record is created with the current time and that time is
        returned, so the first run after installation does not reset anything.

        Raises:
            CheckpointError: If the record cannot be read, created or parsed.
        """
        pass

    @abstractmethod
    def save(self, reset_time: datetime) -> None:
        """
        Overwrites the stored reset time.

        Raises:
            CheckpointError: If the record cannot be written.
        """
        pass

class FileCheckpoint(ICheckpoint, LoggerMixin):
    """Stores the reset time as one ISO-8601 line in a flat file."""

    def __init__(self, path: str, clock: Optional[Clock] = None) -> None:
        self.path = path
        self.clock = clock or SystemClock()

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def load(self) -> datetime:
        if not self.exists():
            current_time = self.clock.now()
            self.save(current_time)
            self.logger.info("Traffic reset checkpoint created", path=self.path, reset_time=format_time(current_time))
            return current_time

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = f.read()
        except OSError as e:
            raise CheckpointError(f"Failed to read checkpoint {self.path}: {e}") from e

        try:
            return parse_time(raw)
        except ValueError as e:
            raise CheckpointError(f"Failed to parse checkpoint {self.path}: {raw.strip()!r}") from e

    def save(self, reset_time: datetime) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            # Write to a sibling temp file then rename so readers never see a partial value
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".checkpoint-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(format_time(reset_time))
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise CheckpointError(f"Failed to write checkpoint {self.path}: {e}") from e

class MemoryCheckpoint(ICheckpoint):
    """In-process checkpoint for embedding and tests."""

    def __init__(self, reset_time: Optional[datetime] = None, clock: Optional[Clock] = None) -> None:
        self.clock = clock or SystemClock()
        self._reset_time = reset_time
        self._lock = threading.Lock()

    def load(self) -> datetime:
        with self._lock:
            if self._reset_time is None:
                self._reset_time = self.clock.now()
            return self._reset_time

    def save(self, reset_time: datetime) -> None:
        with self._lock:
            self._reset_time = reset_time

    @property
    def reset_time(self) -> Optional[datetime]:
        return self._reset_time
