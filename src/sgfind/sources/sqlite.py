"""SQLite node source for homeservers running on SQLite.

Uses stdlib sqlite3 with the database opened read-only. Results are pulled
with fetchmany() so the bulk load never materialises the whole table.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator
from pathlib import Path

from sgfind.graph.errors import NodeSourceError
from sgfind.observability.logging import get_logger
from sgfind.sources.base import (
    DEFAULT_FETCH_BATCH_SIZE,
    DEFAULT_MISSING_BATCH_SIZE,
    STATE_GROUP_COLUMNS,
    STATE_GROUP_JOINS,
    NodeRecord,
    chunked,
)

log = get_logger(__name__)

# Older SQLite builds cap bound parameters per statement at 999
_MAX_BOUND_PARAMETERS = 900


class SqliteNodeSource:
    """Read state groups from a Synapse SQLite database."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        fetch_batch_size: int = DEFAULT_FETCH_BATCH_SIZE,
        missing_batch_size: int = DEFAULT_MISSING_BATCH_SIZE,
        _conn: sqlite3.Connection | None = None,
    ) -> None:
        """Open a SQLite database read-only.

        Args:
            db_path: Path to the homeserver's ``.db`` file.
            fetch_batch_size: Rows pulled per fetchmany() during the bulk load.
            missing_batch_size: Ids per ``IN (...)`` query when fetching
                missing groups (capped by SQLite's parameter limit).
            _conn: Pre-existing connection (for testing). If provided,
                   *db_path* is ignored.

        Raises:
            NodeSourceError: If the database cannot be opened.
        """
        self._db_path = str(db_path)
        self._fetch_batch_size = fetch_batch_size
        self._missing_batch_size = min(missing_batch_size, _MAX_BOUND_PARAMETERS)
        if _conn is not None:
            self._conn = _conn
            return
        path = Path(self._db_path)
        if not path.exists():
            raise NodeSourceError(operation="connect", detail=f"no such file: {self._db_path}")
        # as_uri() percent-escapes '#', '?' and '%' in the path
        try:
            self._conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise NodeSourceError(operation="connect", detail=str(e)) from e

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _stream(self, operation: str, sql: str, params: tuple[object, ...]) -> Iterator[NodeRecord]:
        try:
            cursor = self._conn.execute(sql, params)
            while True:
                rows = cursor.fetchmany(self._fetch_batch_size)
                if not rows:
                    break
                for row in rows:
                    yield NodeRecord.from_row(row)
        except sqlite3.Error as e:
            raise NodeSourceError(operation=operation, detail=str(e)) from e

    def fetch_all(self, room_id: str | None = None) -> Iterator[NodeRecord]:
        sql = f"{STATE_GROUP_COLUMNS}FROM state_groups AS main\n{STATE_GROUP_JOINS}"
        params: tuple[object, ...] = ()
        if room_id is not None:
            sql += "WHERE main.room_id = ?"
            params = (room_id,)
        log.debug("sqlite_fetch_all", db=self._db_path, room_id=room_id)
        yield from self._stream("fetch_all", sql, params)

    def fetch_by_ids(self, ids: Iterable[int]) -> Iterator[NodeRecord]:
        for chunk in chunked(ids, self._missing_batch_size):
            placeholders = ", ".join("?" for _ in chunk)
            sql = (
                f"{STATE_GROUP_COLUMNS}FROM state_groups AS main\n{STATE_GROUP_JOINS}"
                f"WHERE main.id IN ({placeholders})"
            )
            log.debug("sqlite_fetch_by_ids", count=len(chunk))
            yield from self._stream("fetch_by_ids", sql, tuple(chunk))
