"""Auth HTTP fixtures - the real app wired to the in-memory credential store."""

from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from auth.rate_limiter import InMemoryCounterStore
from clients.postgres_client import PostgresClient
from main import create_app


@pytest.fixture
def mock_postgres():
    """Backs the security log, audit log and business queries."""
    mock = Mock(spec=PostgresClient)
    mock.execute.return_value = []
    mock.execute_returning.return_value = []
    return mock


@pytest.fixture
def app(config, mock_postgres, mock_mailer, hasher, fake_db):
    return create_app(
        config=config,
        postgres=mock_postgres,
        mailer=mock_mailer,
        counter_store=InMemoryCounterStore(),
        hasher=hasher,
        auth_db=fake_db,
    )


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)
