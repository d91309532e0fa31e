"""API test fixtures - owner routes behind a mocked session."""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from api.errors import register_error_handlers
from api.middleware import RequestContextMiddleware
from api.owner import create_owner_router
from auth.exceptions import SessionExpiredError
from auth.security_middleware import OwnerAuthMiddleware
from auth.service import AuthService
from auth.session import OWNER_COOKIE_NAME, SessionManager
from auth.types import Session
from core.services.redemption_service import RedemptionService
from utils.timezone import now_utc

# Must match conftest.py
TEST_BUSINESS_EMAIL = "owner@bakery.test"


# =============================================================================
# AUTH FIXTURES
# =============================================================================


@pytest.fixture
def mock_session_manager():
    now = now_utc()
    session = Session(
        token="test-token",
        subject=TEST_BUSINESS_EMAIL,
        created_at=now,
        expires_at=now + timedelta(days=7),
    )

    def validate(token):
        if token != "test-token":
            raise SessionExpiredError("Session not found or expired")
        return session

    mock = Mock(spec=SessionManager)
    mock.cookie_name = OWNER_COOKIE_NAME
    mock.validate_session.side_effect = validate
    return mock


@pytest.fixture
def mock_auth_service(mock_session_manager, business):
    mock = Mock(spec=AuthService)
    mock.session_manager = mock_session_manager
    mock.get_owner.return_value = business
    return mock


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def mock_redemption_service():
    return Mock(spec=RedemptionService)


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(mock_auth_service, mock_redemption_service):
    """FastAPI app with owner auth middleware, error handlers and owner routes."""
    app = FastAPI()
    app.add_middleware(OwnerAuthMiddleware, auth_service=mock_auth_service)
    app.add_middleware(RequestContextMiddleware)
    register_error_handlers(app)

    app.include_router(create_owner_router(mock_redemption_service), prefix="/api/owner")

    return app


@pytest.fixture
def client(app):
    """Authenticated test client."""
    c = TestClient(app, raise_server_exceptions=False)
    c.cookies.set(OWNER_COOKIE_NAME, "test-token")
    return c


@pytest.fixture
def unauthed_client(app):
    """Unauthenticated test client (no session cookie)."""
    return TestClient(app, raise_server_exceptions=False)
