"""Shared test fixtures for the Gifty test suite."""

from datetime import timedelta
from pathlib import Path
from unittest.mock import Mock
from uuid import UUID

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env")

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault = None
vault_module._resolved.clear()

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.passwords import PasswordHasher
from auth.security_logger import SecurityLogger
from auth.types import (
    AdminUser,
    Business,
    Credential,
    MagicLinkToken,
    PasswordResetToken,
    Session,
)
from clients.email_client import Mailer
from core.audit import AuditLogger
from utils.timezone import now_utc
from utils.user_context import clear_current_admin_id


# =============================================================================
# TEST CONSTANTS
# =============================================================================

TEST_BUSINESS_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_BUSINESS_EMAIL = "owner@bakery.test"
TEST_BUSINESS_NAME = "Corner Bakery"

TEST_ADMIN_ID = UUID("00000000-0000-0000-0000-0000000000a1")
TEST_ADMIN_USERNAME = "admin"

STRONG_PASSWORD = "Corr3ct-Horse-Battery!"


# =============================================================================
# IN-MEMORY CREDENTIAL STORE
# =============================================================================


class FakeAuthDatabase(AuthDatabase):
    """
    AuthDatabase held in dicts.

    Mirrors the SQL semantics of the real store, including atomic token
    consumption and lock-at-threshold, so flow tests run without Postgres.
    """

    def __init__(self):
        super().__init__(postgres=None)
        self.businesses: dict[str, Business] = {}
        self.credentials: dict[str, Credential] = {}
        self.admins: dict[str, AdminUser] = {}
        self.magic_links: dict[str, MagicLinkToken] = {}
        self.reset_tokens: dict[str, PasswordResetToken] = {}
        self.sessions: dict[str, dict[str, Session]] = {"owner": {}, "admin": {}}

    # Seeding helpers

    def add_business(self, business: Business) -> Business:
        self.businesses[str(business.id)] = business
        return business

    def add_credential(self, email: str, password_hash: str, **fields) -> Credential:
        credential = Credential(email=email.lower(), password_hash=password_hash, **fields)
        self.credentials[credential.email] = credential
        return credential

    def add_admin(self, admin: AdminUser) -> AdminUser:
        self.admins[str(admin.id)] = admin
        return admin

    # Businesses

    def get_active_business_by_email(self, email):
        for business in self.businesses.values():
            if business.contact_email.lower() == email.lower() and business.is_active:
                return business
        return None

    # Credentials

    def get_credential(self, email):
        return self.credentials.get(email.lower())

    @staticmethod
    def _bump(record, threshold, lock_minutes):
        now = now_utc()
        if record.account_locked_until is not None and record.account_locked_until <= now:
            record.failed_login_attempts = 1
            record.account_locked_until = None
        else:
            record.failed_login_attempts += 1
            if record.failed_login_attempts >= threshold:
                record.account_locked_until = now + timedelta(minutes=lock_minutes)
        return record.failed_login_attempts, record.account_locked_until

    def record_failed_login(self, email, threshold, lock_minutes):
        credential = self.credentials.get(email.lower())
        if credential is None:
            return 0, None
        return self._bump(credential, threshold, lock_minutes)

    def reset_failed_logins(self, email):
        credential = self.credentials.get(email.lower())
        if credential is not None:
            credential.failed_login_attempts = 0
            credential.account_locked_until = None

    def upsert_credential(self, email, password_hash):
        self.credentials[email.lower()] = Credential(
            email=email.lower(),
            password_hash=password_hash,
            failed_login_attempts=0,
            account_locked_until=None,
            password_changed_at=now_utc(),
        )

    # Admins

    def get_admin_by_username(self, username):
        for admin in self.admins.values():
            if admin.username == username:
                return admin
        return None

    def get_admin_by_id(self, admin_id):
        return self.admins.get(str(admin_id))

    def record_admin_failed_login(self, admin_id, threshold, lock_minutes):
        admin = self.admins.get(str(admin_id))
        if admin is None:
            return 0, None
        return self._bump(admin, threshold, lock_minutes)

    def record_admin_login(self, admin_id):
        admin = self.admins.get(str(admin_id))
        if admin is not None:
            admin.failed_login_attempts = 0
            admin.account_locked_until = None

    # Magic links

    def store_magic_link_token(self, token):
        self.magic_links[token.token] = token.model_copy()

    def get_magic_link_token(self, token):
        return self.magic_links.get(token)

    def consume_magic_link_token(self, token):
        record = self.magic_links.get(token)
        if record is None or record.used or record.expires_at <= now_utc():
            return None
        record.used = True
        return record.email

    # Reset tokens

    def store_password_reset_token(self, token):
        self.reset_tokens[token.token] = token.model_copy()

    def get_password_reset_token(self, token):
        return self.reset_tokens.get(token)

    def consume_password_reset_token(self, token, ip_address):
        record = self.reset_tokens.get(token)
        if record is None or record.used or record.expires_at <= now_utc():
            return None
        record.used = True
        record.used_at = now_utc()
        record.ip_address = ip_address or record.ip_address
        return record.email

    # Sessions

    def insert_session(self, kind, session):
        self.sessions[kind][session.token] = session

    def get_session(self, kind, token):
        return self.sessions[kind].get(token)

    def delete_session(self, kind, token):
        return self.sessions[kind].pop(token, None) is not None


# =============================================================================
# CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_admin_context():
    """Ensure clean admin context before and after each test."""
    clear_current_admin_id()
    yield
    clear_current_admin_id()


# =============================================================================
# AUTH FIXTURES
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    """Default policy numbers with a fixed CSRF secret."""
    return AuthConfig(
        site_url="https://gifty.test",
        environment="test",
        csrf_secret="x" * 64,
    )


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    """Cheap bcrypt cost so tests stay fast."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def fake_db() -> FakeAuthDatabase:
    return FakeAuthDatabase()


@pytest.fixture
def business(fake_db) -> Business:
    return fake_db.add_business(
        Business(
            id=TEST_BUSINESS_ID,
            name=TEST_BUSINESS_NAME,
            contact_email=TEST_BUSINESS_EMAIL,
            contact_name="Pat Baker",
            status="active",
        )
    )


@pytest.fixture
def owner_credential(fake_db, business, hasher) -> Credential:
    return fake_db.add_credential(TEST_BUSINESS_EMAIL, hasher.hash(STRONG_PASSWORD))


@pytest.fixture
def admin_user(fake_db, hasher) -> AdminUser:
    return fake_db.add_admin(
        AdminUser(
            id=TEST_ADMIN_ID,
            username=TEST_ADMIN_USERNAME,
            email="admin@gifty.test",
            full_name="Ada Admin",
            role="super_admin",
            password_hash=hasher.hash(STRONG_PASSWORD),
            is_active=True,
        )
    )


@pytest.fixture
def mock_mailer():
    """Mail is the only outbound dependency; every send succeeds."""
    mock = Mock(spec=Mailer)
    mock.send_magic_link.return_value = True
    mock.send_password_reset.return_value = True
    mock.send_redemption_confirmation.return_value = True
    return mock


@pytest.fixture
def mock_security_logger():
    return Mock(spec=SecurityLogger)


@pytest.fixture
def mock_audit():
    mock = Mock(spec=AuditLogger)
    mock.log_action.return_value = True
    return mock
