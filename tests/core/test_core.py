"""Tests for settings, request context, schema setup and storage error translation."""

from unittest.mock import AsyncMock, Mock

import pytest
from cassandra import OperationTimedOut
from cassandra.cluster import NoHostAvailable
from pydantic import ValidationError

from src.config.settings import Settings
from src.core.context import (
    RequestContext,
    clear_context,
    get_context,
    set_learner_id,
    set_request_id,
)
from src.core.database.async_cassandra import SCHEMA, create_schema, keyspace_replication
from src.core.database.errors import TransientStorageError, translate_storage_errors


class TestSettings:
    def test_progress_defaults(self):
        settings = Settings()

        assert settings.learner_id_header == "X-Learner-ID"
        assert settings.progress_cas_max_attempts == 5
        assert settings.progress_default_completion_threshold == 100

    def test_threshold_bounds(self):
        with pytest.raises(ValidationError):
            Settings(progress_default_completion_threshold=150)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PROGRESS_CAS_MAX_ATTEMPTS", "9")

        assert Settings().progress_cas_max_attempts == 9


class TestRequestContext:
    def test_learner_is_bound_and_cleared(self):
        request_id = set_request_id()
        set_learner_id("6b0e4cbb-84c5-4a9a-9d0a-4d3ed3d6f1a2")

        context = get_context()
        assert context["request_id"] == request_id
        assert context["learner_id"] == "6b0e4cbb-84c5-4a9a-9d0a-4d3ed3d6f1a2"

        clear_context()
        assert "learner_id" not in get_context()

    def test_scoped_context_restores_previous_values(self):
        clear_context()

        with RequestContext(request_id="reconcile-1", learner_id="learner-7"):
            assert get_context() == {"request_id": "reconcile-1", "learner_id": "learner-7"}

        assert get_context() == {}


class TestTranslateStorageErrors:
    @pytest.mark.parametrize(
        "error",
        [OperationTimedOut("timed out"), NoHostAvailable("no hosts", {})],
    )
    def test_transient_driver_errors(self, error):
        with pytest.raises(TransientStorageError) as exc_info:
            with translate_storage_errors("read"):
                raise error

        assert exc_info.value.code == "storage_unavailable"


class TestKeyspaceReplication:
    def test_development_uses_simple_strategy(self):
        replication = keyspace_replication(Settings(environment="development"))

        assert replication == "{'class': 'SimpleStrategy', 'replication_factor': 1}"

    def test_production_replicates_in_local_dc(self):
        settings = Settings(
            environment="production", cassandra_local_dc="eu-west", cassandra_replication_factor=3
        )

        assert keyspace_replication(settings) == (
            "{'class': 'NetworkTopologyStrategy', 'eu-west': 3}"
        )

    @pytest.mark.asyncio
    async def test_create_schema_runs_every_table(self):
        session = Mock()
        session.aexecute = AsyncMock()

        await create_schema(session, "test_keyspace")

        statements = [call.args[0] for call in session.aexecute.call_args_list]
        assert len(statements) == sum(len(group) for group in SCHEMA.values())
        assert all("test_keyspace." in cql for cql in statements)
