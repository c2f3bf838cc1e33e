"""Database connection module for the learning engine."""

from src.core.database.async_cassandra import (
    AsyncCassandraConnection,
    create_schema,
    init_async_cassandra,
    keyspace_replication,
    shutdown_async_cassandra,
)
from src.core.database.errors import TransientStorageError, translate_storage_errors


__all__ = [
    "AsyncCassandraConnection",
    "TransientStorageError",
    "create_schema",
    "init_async_cassandra",
    "keyspace_replication",
    "shutdown_async_cassandra",
    "translate_storage_errors",
]
