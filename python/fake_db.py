"""
Minimal DB-API stand-ins for tests

FakeConnection records every query it receives and answers the hll catalog
query with the configured column names.
"""

import threading
import time
from typing import List, Optional


class FakeCursor:
    def __init__(self, connection: 'FakeConnection'):
        self.connection = connection
        self.closed = False
        self._rows: List[tuple] = []

    def execute(self, query, params=None):
        with self.connection.lock:
            self.connection.queries.append((query, params))
        if self.connection.delay:
            time.sleep(self.connection.delay)
        if self.connection.error is not None:
            raise self.connection.error
        self._rows = [(name,) for name in self.connection.hll_columns]

    def fetchall(self):
        return list(self._rows)

    def close(self):
        self.closed = True


class FakeConnection:
    """
    Attributes:
        hll_columns: Values returned by the catalog query
        error: Exception raised by execute(), if set
        rollback_error: Exception raised by rollback(), if set
        delay: Seconds to sleep inside execute()
        queries: (query, params) of every execute() call
        rollbacks: Number of rollback() calls
    """

    def __init__(
        self,
        hll_columns=(),
        error: Optional[Exception] = None,
        delay: float = 0.0,
        rollback_error: Optional[Exception] = None
    ):
        self.hll_columns = list(hll_columns)
        self.error = error
        self.rollback_error = rollback_error
        self.rollbacks = 0
        self.delay = delay
        self.queries: List[tuple] = []
        self.cursors: List[FakeCursor] = []
        self.lock = threading.Lock()

    def cursor(self):
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor

    def rollback(self):
        self.rollbacks += 1
        if self.rollback_error is not None:
            raise self.rollback_error

    @property
    def query_count(self) -> int:
        return len(self.queries)
