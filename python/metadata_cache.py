"""
Metadata Cache - schema facts shared by all rewrites

Holds the set of hyperloglog columns discovered from the PostgreSQL catalog,
plus the dimension table caches. One instance is shared by every rewriter in
the process; tests create their own instances.
"""

import logging
import threading
import time
from contextlib import closing
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Tuple

from constants import (
    HLL_TYPE_NAME,
    MAX_DIM_TABLE_SIZE,
    DIMENSION_RANGES_CACHE_TTL,
    SQL_LOGGER_NAME,
    QualifiedColumn,
)


LOG = logging.getLogger(__name__)
SQL_LOG = logging.getLogger(SQL_LOGGER_NAME)

HLL_COLUMNS_QUERY = """
select lower(n.nspname || '.' || c.relname || '.' || a.attname) as hll_column
from pg_attribute a
join pg_class c on a.attrelid = c.oid
join pg_namespace n on c.relnamespace = n.oid
join pg_type t on a.atttypid = t.oid
where t.typname = %s"""


class MetadataCache:
    """
    Process-wide cache of schema facts

    The hyperloglog column set is populated lazily on first use and stays
    valid until clear_cache(). The dimension range map uses a single expiry
    timestamp for all entries: once it passes, the whole map is dropped.
    """

    def __init__(
        self,
        hll_type_name: str = HLL_TYPE_NAME,
        ranges_ttl: float = DIMENSION_RANGES_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic
    ):
        self.hll_type_name = hll_type_name
        self.ranges_ttl = ranges_ttl
        self._clock = clock
        self._lock = threading.RLock()
        self._hll_columns: Optional[FrozenSet[QualifiedColumn]] = None  # None = not populated
        self._dimension_tables: Dict[str, bool] = {}
        self._dimension_ranges: Dict[str, Tuple[int, int]] = {}
        self._dimension_ranges_expiry = 0.0

    @property
    def is_warm(self) -> bool:
        return self._hll_columns is not None

    def get_hyperloglog_columns(self, connection: Any) -> FrozenSet[QualifiedColumn]:
        """
        Return all columns of the hyperloglog type

        Args:
            connection: DB-API connection, only used when the cache is empty

        Returns:
            Lower-case "schema.table.column" names. Empty if the catalog query
            failed; the failure is not cached.
        """
        columns = self._hll_columns
        if columns is not None:
            return columns

        with self._lock:
            # Another thread may have populated the cache while we waited
            if self._hll_columns is not None:
                return self._hll_columns
            return self._populate(connection)

    def warm(self, connection: Any) -> FrozenSet[QualifiedColumn]:
        """Re-read the hyperloglog columns from the catalog"""
        with self._lock:
            self._hll_columns = None
            return self._populate(connection)

    def seed(self, columns: Iterable[str]) -> None:
        """Set the hyperloglog columns without querying the catalog"""
        with self._lock:
            self._hll_columns = frozenset(c.lower() for c in columns)

    def clear_cache(self) -> None:
        """Forget the hyperloglog columns; the next rewrite re-queries the catalog"""
        with self._lock:
            self._hll_columns = None

    def _populate(self, connection: Any) -> FrozenSet[QualifiedColumn]:
        SQL_LOG.debug(HLL_COLUMNS_QUERY)

        try:
            with closing(connection.cursor()) as cursor:
                cursor.execute(HLL_COLUMNS_QUERY, (self.hll_type_name,))
                rows = cursor.fetchall()
            columns = frozenset(row[0].lower() for row in rows)
        except Exception:
            LOG.exception("Error reading hyperloglog columns from the catalog")
            self._rollback(connection)
            return frozenset()

        self._hll_columns = columns
        LOG.debug("Found %d hyperloglog columns", len(columns))
        return columns

    def _rollback(self, connection: Any) -> None:
        """End the transaction aborted by a failed catalog query"""
        rollback = getattr(connection, 'rollback', None)
        if rollback is None:
            return
        try:
            rollback()
        except Exception:
            LOG.exception("Error rolling back after the catalog query failed")

    # ------------------------------------------------------------------
    # Dimension table caches
    # ------------------------------------------------------------------

    def set_dimension_table(self, key: str, row_count: int) -> bool:
        """
        Record whether a table is a small dimension table

        Returns:
            True if row_count is below MAX_DIM_TABLE_SIZE
        """
        is_dimension = row_count < MAX_DIM_TABLE_SIZE
        with self._lock:
            self._dimension_tables[key] = is_dimension
        return is_dimension

    def is_dimension_table(self, key: str) -> Optional[bool]:
        """None if the table has not been classified yet"""
        return self._dimension_tables.get(key)

    def put_dimension_range(self, key: str, min_value: int, max_value: int) -> None:
        with self._lock:
            self._expire_dimension_ranges()
            if not self._dimension_ranges:
                # First entry opens a new expiry window for the whole map
                self._dimension_ranges_expiry = self._clock() + self.ranges_ttl
            self._dimension_ranges[key] = (min_value, max_value)

    def get_dimension_range(self, key: str) -> Optional[Tuple[int, int]]:
        with self._lock:
            self._expire_dimension_ranges()
            return self._dimension_ranges.get(key)

    def clear_dimension_caches(self) -> None:
        with self._lock:
            self._dimension_tables = {}
            self._dimension_ranges = {}
            self._dimension_ranges_expiry = 0.0

    def _expire_dimension_ranges(self) -> None:
        if self._dimension_ranges and self._clock() >= self._dimension_ranges_expiry:
            self._dimension_ranges = {}


default_cache = MetadataCache()


def clear_cache() -> None:
    """Flush the process-wide cache (administrative operation)"""
    default_cache.clear_cache()
