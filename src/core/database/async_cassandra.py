"""Async Cassandra session for the learning engine (cassandra-asyncio-driver).

Progress writes are lightweight transactions, so the session runs with
LOCAL_QUORUM for regular statements and LOCAL_SERIAL for the Paxos phase.
Schema (keyspace, hierarchy tables, progress tables) is created on startup.
"""

from typing import TYPE_CHECKING

import structlog
from cassandra import ConsistencyLevel
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from src.config.settings import get_settings
from src.courses.models import COURSES_TABLES_CQL
from src.progress.models import PROGRESS_TABLES_CQL


if TYPE_CHECKING:
    from src.config.settings import Settings

logger = structlog.get_logger(__name__)

# Table groups created at startup, in dependency-free order
SCHEMA: dict[str, list[str]] = {
    "courses": COURSES_TABLES_CQL,
    "progress": PROGRESS_TABLES_CQL,
}


class AsyncCassandraConnection:
    """Process-wide cluster and session.

    Connecting is blocking; queries go through ``session.aexecute()``.
    """

    _cluster: Cluster | None = None
    _session = None

    @classmethod
    def connect(cls):
        """Connect once and reuse the session.

        Raises:
            ConnectionError: If no host can be reached
        """
        if cls._session is not None:
            return cls._session

        settings = get_settings()

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        cls._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(
                DCAwareRoundRobinPolicy(local_dc=settings.cassandra_local_dc)
            ),
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            session = cls._cluster.connect()
        except Exception as e:
            logger.error(
                "cassandra_connection_failed",
                hosts=settings.cassandra_hosts,
                error=str(e),
            )
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        session.default_timeout = settings.cassandra_request_timeout
        session.default_consistency_level = ConsistencyLevel.LOCAL_QUORUM
        session.default_serial_consistency_level = ConsistencyLevel.LOCAL_SERIAL
        cls._session = session

        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
            local_dc=settings.cassandra_local_dc,
        )
        return cls._session

    @classmethod
    def disconnect(cls) -> None:
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_disconnected")


def keyspace_replication(settings: "Settings") -> str:
    """Replication map for the keyspace.

    Production replicates within the local datacenter so LOCAL_SERIAL
    has a quorum to work with; other environments use a single replica.
    """
    if settings.is_production:
        return (
            "{'class': 'NetworkTopologyStrategy', "
            f"'{settings.cassandra_local_dc}': {settings.cassandra_replication_factor}}}"
        )
    return (
        "{'class': 'SimpleStrategy', "
        f"'replication_factor': {settings.cassandra_replication_factor}}}"
    )


async def create_schema(session, keyspace: str) -> None:
    """Create every table group in ``SCHEMA`` (idempotent)."""
    for group, statements in SCHEMA.items():
        for cql_template in statements:
            await session.aexecute(cql_template.format(keyspace=keyspace))
        logger.info("schema_group_ready", group=group, tables=len(statements))


async def init_async_cassandra():
    """Connect, create the keyspace and schema, and return the session."""
    settings = get_settings()
    keyspace = settings.cassandra_keyspace

    session = AsyncCassandraConnection.connect()
    await session.aexecute(
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} "
        f"WITH replication = {keyspace_replication(settings)} "
        "AND durable_writes = true"
    )
    session.set_keyspace(keyspace)
    await create_schema(session, keyspace)

    logger.info("cassandra_initialized", keyspace=keyspace)
    return session


async def shutdown_async_cassandra() -> None:
    AsyncCassandraConnection.disconnect()
