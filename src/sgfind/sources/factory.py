"""Node source factory.

Picks a NodeSource implementation from a database URL:

- ``sqlite:///path/to/homeserver.db`` or a bare filesystem path opens the
  file with stdlib sqlite3, read-only.
- Anything else (``postgresql://...``, ``postgres://...``) is handed to
  SQLAlchemy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sgfind.graph.errors import NodeSourceError
from sgfind.sources.base import DEFAULT_FETCH_BATCH_SIZE, DEFAULT_MISSING_BATCH_SIZE
from sgfind.sources.sql import SqlAlchemyNodeSource
from sgfind.sources.sqlite import SqliteNodeSource

if TYPE_CHECKING:
    from sgfind.sources.base import NodeSource

_SQLITE_PREFIX = "sqlite:///"


def sqlite_path_from_url(database_url: str) -> str | None:
    """Return the database file path if *database_url* names a SQLite file.

    Args:
        database_url: URL or path given by the user.

    Returns:
        Filesystem path for SQLite URLs and bare paths, None otherwise.
    """
    if database_url.startswith(_SQLITE_PREFIX):
        path = database_url[len(_SQLITE_PREFIX) :]
        return path or None
    if "://" not in database_url:
        return database_url
    return None


def open_node_source(
    database_url: str,
    *,
    fetch_batch_size: int = DEFAULT_FETCH_BATCH_SIZE,
    missing_batch_size: int = DEFAULT_MISSING_BATCH_SIZE,
) -> NodeSource:
    """Open a node source for *database_url*.

    Args:
        database_url: Database URL or SQLite file path.
        fetch_batch_size: Rows per batch during the bulk load.
        missing_batch_size: Ids per query when fetching missing groups.

    Returns:
        A connected NodeSource. The caller must close() it.

    Raises:
        NodeSourceError: If the URL is empty, unsupported, or the database
            cannot be opened.
    """
    if not database_url.strip():
        raise NodeSourceError(operation="connect", detail="empty database URL")

    sqlite_path = sqlite_path_from_url(database_url)
    if sqlite_path is not None:
        return SqliteNodeSource(
            sqlite_path,
            fetch_batch_size=fetch_batch_size,
            missing_batch_size=missing_batch_size,
        )
    return SqlAlchemyNodeSource(
        database_url,
        fetch_batch_size=fetch_batch_size,
        missing_batch_size=missing_batch_size,
    )
