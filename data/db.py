import os
import queue
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Tuple

from core.exceptions import DeadlineExceededError, PersistenceError
from core.types import DatabaseResult

# Number of sqlite VM instructions between deadline checks
PROGRESS_STEPS = 1000

class Database:
    """Handles all low-level interactions with the SQLite database."""

    # Connection pools per database file
    _pools: Dict[str, queue.Queue] = {}
    _locks: Dict[str, threading.Lock] = {}
    _registry_lock = threading.Lock()

    def __init__(self, db_file: str, timeout: float = 30.0, pool_size: Optional[int] = None) -> None:
        """Initialize the database connection pool."""

        self.db_file = db_file
        self.timeout = timeout
        self.pool_size = pool_size or self._calculate_pool_size()
        directory = os.path.dirname(os.path.abspath(self.db_file))
        os.makedirs(directory, exist_ok=True)

        # Ensure a pool exists for this database file
        with Database._registry_lock:
            if db_file not in Database._locks:
                Database._locks[db_file] = threading.Lock()
        self._ensure_pool()

    # Internal helpers -------------------------------------------------

    def _ensure_pool(self) -> None:
        """Create a connection pool for the database file if needed."""
        if self.db_file in Database._pools:
            return
        with Database._locks[self.db_file]:
            if self.db_file in Database._pools:
                return
            pool = queue.Queue(maxsize=self.pool_size)
            try:
                for index in range(pool.maxsize):
                    conn = sqlite3.connect(self.db_file, timeout=self.timeout, check_same_thread=False)
                    conn.row_factory = sqlite3.Row
                    conn.execute("PRAGMA foreign_keys = ON")
                    if index == 0:
                        conn.execute("PRAGMA journal_mode = WAL")
                    pool.put(conn)
            except sqlite3.Error as e:
                while not pool.empty():
                    pool.get_nowait().close()
                raise PersistenceError(f"Failed to open database {self.db_file}: {e}") from e
            Database._pools[self.db_file] = pool

    def _get_from_pool(self, timeout: Optional[float] = None) -> sqlite3.Connection:
        self._ensure_pool()
        return Database._pools[self.db_file].get(timeout=timeout)

    def _return_to_pool(self, conn: sqlite3.Connection) -> None:
        pool = Database._pools.get(self.db_file)
        if pool is None:
            conn.close()
            return
        pool.put(conn)

    def _calculate_pool_size(self) -> int:
        """Determine an appropriate connection pool size."""
        cores = os.cpu_count() or 1
        return max(2, min(20, cores * 2))

    @contextmanager
    def get_connection(self, operation: str = "query", timeout: Optional[float] = None) -> Iterator[sqlite3.Connection]:
        """
        Yields a pooled connection inside a transaction.

        The transaction is committed when the block exits cleanly and rolled
        back otherwise. With a ``timeout`` the whole block runs under a
        deadline: waiting for a connection and executing statements both
        count against it, and running past it raises DeadlineExceededError.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        try:
            conn = self._get_from_pool(timeout)
        except queue.Empty:
            raise DeadlineExceededError(operation, timeout) from None

        if deadline is not None:
            conn.set_progress_handler(lambda: int(time.monotonic() > deadline), PROGRESS_STEPS)
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            if deadline is not None and time.monotonic() > deadline:
                raise DeadlineExceededError(operation, timeout) from e
            raise PersistenceError(f"Database operation '{operation}' failed: {e}") from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            if deadline is not None:
                conn.set_progress_handler(None, 0)
            self._return_to_pool(conn)

    def execute_query(self, query: str, params: Tuple = (), timeout: Optional[float] = None) -> DatabaseResult:
        """
        Executes a given SQL query (e.g., SELECT, INSERT, UPDATE, DELETE).
        For queries that modify data, this method handles commit and rollback.

        Args:
            query (str): The SQL query to execute.
            params (tuple): The parameters to substitute into the query.
            timeout (float): Optional deadline in seconds.

        Returns:
            list: A list of rows for SELECT queries, otherwise an empty list.
        """
        with self.get_connection(query.split(None, 1)[0].lower(), timeout) as conn:
            cursor = conn.execute(query, params)
            if query.strip().upper().startswith("SELECT"):
                return [dict(row) for row in cursor.fetchall()]
            return []

    def execute_script(self, script: str) -> None:
        """
        Executes a multi-statement SQL script.

        Args:
            script (str): The SQL script to execute.
        """
        with self.get_connection("script") as conn:
            conn.executescript(script)

    def close_pool(self) -> None:
        """Close every pooled connection for this database file."""
        with Database._registry_lock:
            pool = Database._pools.pop(self.db_file, None)
        if pool is None:
            return
        while True:
            try:
                pool.get_nowait().close()
            except queue.Empty:
                break
