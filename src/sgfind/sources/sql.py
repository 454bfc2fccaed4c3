"""SQLAlchemy node source, used for PostgreSQL homeservers.

The bulk load runs inside a single read transaction with a server-side
cursor (``stream_results``), so rows arrive in ``fetch_batch_size``
batches instead of being buffered by the driver. Missing groups are
fetched with expanding ``IN`` parameters, a chunk of ids per query.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from sqlalchemy import bindparam, create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

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

_FETCH_ALL_SQL = f"{STATE_GROUP_COLUMNS}FROM state_groups AS main\n{STATE_GROUP_JOINS}"

_FETCH_BY_IDS = text(
    f"{STATE_GROUP_COLUMNS}FROM state_groups AS main\n{STATE_GROUP_JOINS}"
    "WHERE main.id IN :ids"
).bindparams(bindparam("ids", expanding=True))


def normalize_database_url(database_url: str) -> str:
    """Map libpq-style ``postgres://`` URLs to SQLAlchemy's dialect name."""
    if database_url.startswith("postgres://"):
        return "postgresql://" + database_url[len("postgres://") :]
    return database_url


class SqlAlchemyNodeSource:
    """Read state groups through a SQLAlchemy engine."""

    def __init__(
        self,
        database_url: str,
        *,
        fetch_batch_size: int = DEFAULT_FETCH_BATCH_SIZE,
        missing_batch_size: int = DEFAULT_MISSING_BATCH_SIZE,
        _engine: Engine | None = None,
    ) -> None:
        """Create an engine for *database_url*.

        No connection is made until the first fetch.

        Args:
            database_url: SQLAlchemy URL (``postgres://`` is accepted too).
            fetch_batch_size: Rows per server-side cursor batch.
            missing_batch_size: Ids per query when fetching missing groups.
            _engine: Pre-built engine (for testing). If provided,
                     *database_url* is only used for logging.

        Raises:
            NodeSourceError: If the URL is invalid or its driver is missing.
        """
        self._fetch_batch_size = fetch_batch_size
        self._missing_batch_size = missing_batch_size
        if _engine is not None:
            self._engine = _engine
            self._display_url = database_url
            return
        try:
            url = make_url(normalize_database_url(database_url))
            self._display_url = url.render_as_string(hide_password=True)
            self._engine = create_engine(url)
        except (ArgumentError, ImportError) as e:
            raise NodeSourceError(operation="connect", detail=str(e)) from e

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self._engine.dispose()

    def fetch_all(self, room_id: str | None = None) -> Iterator[NodeRecord]:
        sql = _FETCH_ALL_SQL
        params: dict[str, Any] = {}
        if room_id is not None:
            sql += "WHERE main.room_id = :room_id"
            params["room_id"] = room_id
        log.debug("sql_fetch_all", url=self._display_url, room_id=room_id)
        try:
            with self._engine.connect() as conn, conn.begin():
                result = conn.execution_options(
                    stream_results=True,
                    yield_per=self._fetch_batch_size,
                ).execute(text(sql), params)
                for row in result:
                    yield NodeRecord.from_row(row)
        except SQLAlchemyError as e:
            raise NodeSourceError(operation="fetch_all", detail=str(e)) from e

    def fetch_by_ids(self, ids: Iterable[int]) -> Iterator[NodeRecord]:
        try:
            with self._engine.connect() as conn:
                for chunk in chunked(ids, self._missing_batch_size):
                    log.debug("sql_fetch_by_ids", count=len(chunk))
                    for row in conn.execute(_FETCH_BY_IDS, {"ids": chunk}):
                        yield NodeRecord.from_row(row)
        except SQLAlchemyError as e:
            raise NodeSourceError(operation="fetch_by_ids", detail=str(e)) from e
