"""Node sources - read-only access to the state groups of a homeserver database."""

from sgfind.sources.base import NodeRecord, NodeSource
from sgfind.sources.factory import open_node_source, sqlite_path_from_url
from sgfind.sources.sql import SqlAlchemyNodeSource, normalize_database_url
from sgfind.sources.sqlite import SqliteNodeSource

__all__ = [
    "NodeRecord",
    "NodeSource",
    "SqlAlchemyNodeSource",
    "SqliteNodeSource",
    "normalize_database_url",
    "open_node_source",
    "sqlite_path_from_url",
]
