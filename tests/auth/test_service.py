"""Tests for AuthService - business owner login, magic links and logout."""

from datetime import timedelta

import pytest

from auth.exceptions import (
    AccountLockedError,
    InvalidCredentialsError,
    PasswordNotSetError,
    RateLimitedError,
)
from auth.rate_limiter import InMemoryCounterStore, RateLimiter
from auth.security_logger import SecurityEvent
from auth.service import AuthService, normalize_email
from auth.session import SessionManager, SessionPolicy
from auth.types import Business
from core.exceptions import ValidationError
from utils.timezone import now_utc

# Must match conftest.py
TEST_BUSINESS_EMAIL = "owner@bakery.test"
STRONG_PASSWORD = "Corr3ct-Horse-Battery!"
IP = "203.0.113.7"
UA = "pytest"


@pytest.fixture
def store():
    return InMemoryCounterStore()


@pytest.fixture
def login_limiter(store):
    return RateLimiter(store, max_attempts=5, window_seconds=900, namespace="login")


@pytest.fixture
def magic_link_limiter(store):
    return RateLimiter(store, max_attempts=5, window_seconds=900, namespace="magic_link")


@pytest.fixture
def session_manager(fake_db, config):
    return SessionManager(fake_db, SessionPolicy.owner(config))


@pytest.fixture
def make_service(
    config, fake_db, session_manager, login_limiter, magic_link_limiter,
    mock_mailer, mock_security_logger, hasher,
):
    """Build an AuthService, optionally with a different login limiter."""

    def _make(rate_limiter=None):
        return AuthService(
            config=config,
            auth_db=fake_db,
            session_manager=session_manager,
            rate_limiter=rate_limiter or login_limiter,
            magic_link_limiter=magic_link_limiter,
            mailer=mock_mailer,
            security_logger=mock_security_logger,
            hasher=hasher,
        )

    return _make


@pytest.fixture
def auth_service(make_service):
    return make_service()


@pytest.fixture
def roomy_service(make_service, store):
    """Login limiter too generous to interfere with lockout tests."""
    return make_service(RateLimiter(store, max_attempts=100, window_seconds=900, namespace="login"))


def _logged_events(mock_security_logger):
    return [c.args[0] for c in mock_security_logger.log.call_args_list]


class TestNormalizeEmail:

    def test_trims_and_lowercases(self):
        assert normalize_email("  Owner@Bakery.TEST ") == "owner@bakery.test"

    @pytest.mark.parametrize("bad", [None, "", "no-at-sign"])
    def test_rejects_invalid(self, bad):
        with pytest.raises(ValidationError, match="Valid email is required"):
            normalize_email(bad)


class TestLoginWithPassword:

    def test_success_creates_session(self, auth_service, owner_credential, fake_db):
        result = auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)

        assert result.business.contact_email == TEST_BUSINESS_EMAIL
        assert result.session.subject == TEST_BUSINESS_EMAIL
        assert result.session.token in fake_db.sessions["owner"]

    def test_success_is_logged(self, auth_service, owner_credential, mock_security_logger):
        auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)

        events = _logged_events(mock_security_logger)
        assert SecurityEvent.SESSION_CREATED in events
        assert SecurityEvent.LOGIN_SUCCEEDED in events

    def test_event_write_failure_does_not_fail_login(
        self, auth_service, owner_credential, fake_db, mock_security_logger
    ):
        mock_security_logger.log.side_effect = RuntimeError("security_events insert failed")

        result = auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)

        assert list(fake_db.sessions["owner"]) == [result.session.token]
        assert owner_credential.failed_login_attempts == 0

    def test_email_is_case_insensitive(self, auth_service, owner_credential):
        result = auth_service.login_with_password("OWNER@bakery.test", STRONG_PASSWORD, IP, UA)
        assert result.session.subject == TEST_BUSINESS_EMAIL

    def test_missing_password(self, auth_service, owner_credential):
        with pytest.raises(ValidationError, match="Password is required"):
            auth_service.login_with_password(TEST_BUSINESS_EMAIL, "", IP, UA)

    def test_unknown_business_is_generic(self, auth_service):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            auth_service.login_with_password("nobody@x.test", STRONG_PASSWORD, IP, UA)
        assert exc_info.value.message == "Invalid email or password"

    def test_inactive_business_is_generic(self, auth_service, owner_credential, business):
        business.status = "suspended"
        with pytest.raises(InvalidCredentialsError):
            auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)

    def test_password_not_set(self, auth_service, business):
        with pytest.raises(PasswordNotSetError):
            auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)

    def test_wrong_password_counts_failure(self, auth_service, owner_credential):
        with pytest.raises(InvalidCredentialsError):
            auth_service.login_with_password(TEST_BUSINESS_EMAIL, "Wrong-Pass-123!", IP, UA)
        assert owner_credential.failed_login_attempts == 1

    def test_success_resets_failures(self, auth_service, owner_credential, store):
        with pytest.raises(InvalidCredentialsError):
            auth_service.login_with_password(TEST_BUSINESS_EMAIL, "Wrong-Pass-123!", IP, UA)

        auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)

        assert owner_credential.failed_login_attempts == 0
        assert store.get(f"ratelimit:login:id:{TEST_BUSINESS_EMAIL}") is None
        assert store.get(f"ratelimit:login:ip:{IP}") is None

    def test_sixth_attempt_is_rate_limited(self, auth_service, owner_credential, mock_security_logger):
        """The limit is checked before the password, so even the right one is refused."""
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                auth_service.login_with_password(TEST_BUSINESS_EMAIL, "Wrong-Pass-123!", IP, UA)

        with pytest.raises(RateLimitedError):
            auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)

        assert SecurityEvent.RATE_LIMITED in _logged_events(mock_security_logger)

    def test_warns_near_lockout(self, roomy_service, owner_credential):
        owner_credential.failed_login_attempts = 6

        with pytest.raises(InvalidCredentialsError) as exc_info:
            roomy_service.login_with_password(TEST_BUSINESS_EMAIL, "Wrong-Pass-123!", IP, UA)

        assert exc_info.value.remaining_attempts == 3

    def test_no_warning_far_from_lockout(self, roomy_service, owner_credential):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            roomy_service.login_with_password(TEST_BUSINESS_EMAIL, "Wrong-Pass-123!", IP, UA)
        assert exc_info.value.remaining_attempts is None

    def test_locks_at_threshold(self, roomy_service, owner_credential, mock_security_logger):
        for _ in range(9):
            with pytest.raises(InvalidCredentialsError):
                roomy_service.login_with_password(TEST_BUSINESS_EMAIL, "Wrong-Pass-123!", IP, UA)

        with pytest.raises(AccountLockedError) as exc_info:
            roomy_service.login_with_password(TEST_BUSINESS_EMAIL, "Wrong-Pass-123!", IP, UA)

        assert exc_info.value.minutes_remaining == 30
        assert SecurityEvent.ACCOUNT_LOCKED in _logged_events(mock_security_logger)

    def test_locked_account_refuses_correct_password(self, roomy_service, owner_credential):
        owner_credential.failed_login_attempts = 10
        owner_credential.account_locked_until = now_utc() + timedelta(minutes=10)

        with pytest.raises(AccountLockedError):
            roomy_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)

    def test_expired_lock_allows_login(self, roomy_service, owner_credential):
        owner_credential.failed_login_attempts = 10
        owner_credential.account_locked_until = now_utc() - timedelta(minutes=1)

        result = roomy_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)

        assert result.session is not None
        assert owner_credential.account_locked_until is None

    def test_expired_lock_restarts_counter(self, roomy_service, owner_credential):
        owner_credential.failed_login_attempts = 10
        owner_credential.account_locked_until = now_utc() - timedelta(minutes=1)

        with pytest.raises(InvalidCredentialsError):
            roomy_service.login_with_password(TEST_BUSINESS_EMAIL, "Wrong-Pass-123!", IP, UA)

        assert owner_credential.failed_login_attempts == 1


class TestRequestMagicLink:

    def test_sends_link_for_known_business(self, auth_service, business, mock_mailer, fake_db):
        message = auth_service.request_magic_link(TEST_BUSINESS_EMAIL, IP, UA)

        assert message == AuthService.MAGIC_LINK_SENT_MESSAGE
        assert len(fake_db.magic_links) == 1
        token = next(iter(fake_db.magic_links))
        kwargs = mock_mailer.send_magic_link.call_args.kwargs
        assert kwargs["to"] == TEST_BUSINESS_EMAIL
        assert kwargs["link"] == f"https://gifty.test/api/auth/verify?token={token}"
        assert kwargs["expires_in_minutes"] == 15

    def test_token_expires_after_fifteen_minutes(self, auth_service, business, fake_db):
        auth_service.request_magic_link(TEST_BUSINESS_EMAIL, IP, UA)
        token = next(iter(fake_db.magic_links.values()))
        assert token.expires_at - token.created_at == timedelta(minutes=15)
        assert token.used is False

    def test_unknown_email_gets_same_message(self, auth_service, mock_mailer, fake_db):
        """No way to tell from the response whether the business exists."""
        message = auth_service.request_magic_link("nobody@x.test", IP, UA)

        assert message == AuthService.MAGIC_LINK_SENT_MESSAGE
        mock_mailer.send_magic_link.assert_not_called()
        assert fake_db.magic_links == {}

    def test_mail_failure_is_not_raised(self, auth_service, business, mock_mailer):
        mock_mailer.send_magic_link.return_value = False
        assert auth_service.request_magic_link(TEST_BUSINESS_EMAIL, IP, UA) == (
            AuthService.MAGIC_LINK_SENT_MESSAGE
        )

    def test_budget_applies_to_unknown_emails(self, auth_service):
        for _ in range(5):
            auth_service.request_magic_link("nobody@x.test", IP, UA)
        with pytest.raises(RateLimitedError):
            auth_service.request_magic_link("nobody@x.test", IP, UA)

    def test_rejects_malformed_email(self, auth_service):
        with pytest.raises(ValidationError):
            auth_service.request_magic_link("not-an-email", IP, UA)

    def test_link_logged_outside_production(self, auth_service, business, caplog):
        with caplog.at_level("INFO", logger="gifty.devlinks"):
            auth_service.request_magic_link(TEST_BUSINESS_EMAIL, IP, UA)
        assert "/api/auth/verify?token=" in caplog.text


class TestMagicLinkVerification:

    def _request(self, auth_service, fake_db):
        auth_service.request_magic_link(TEST_BUSINESS_EMAIL, IP, UA)
        return next(iter(fake_db.magic_links))

    def test_login_with_magic_link(self, auth_service, business, fake_db):
        token = self._request(auth_service, fake_db)

        session = auth_service.login_with_magic_link(token, IP, UA)

        assert session.subject == TEST_BUSINESS_EMAIL
        assert session.token in fake_db.sessions["owner"]

    def test_token_is_single_use(self, auth_service, business, fake_db):
        token = self._request(auth_service, fake_db)

        assert auth_service.verify_magic_link(token) == TEST_BUSINESS_EMAIL
        assert auth_service.verify_magic_link(token) is None

    def test_expired_token(self, auth_service, business, fake_db):
        token = self._request(auth_service, fake_db)
        fake_db.magic_links[token].expires_at = now_utc() - timedelta(seconds=1)

        assert auth_service.login_with_magic_link(token, IP, UA) is None

    def test_unknown_and_missing_token(self, auth_service):
        assert auth_service.verify_magic_link("nope") is None
        assert auth_service.verify_magic_link(None) is None

    def test_failure_reason_logged(self, auth_service, business, fake_db, mock_security_logger):
        token = self._request(auth_service, fake_db)
        auth_service.verify_magic_link(token)
        auth_service.verify_magic_link(token)

        last = mock_security_logger.log.call_args
        assert last.args[0] == SecurityEvent.MAGIC_LINK_FAILED
        assert last.kwargs["details"] == {"reason": "token_already_used"}

    def test_database_error_is_swallowed(self, auth_service, fake_db, monkeypatch):
        def boom(token):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(fake_db, "consume_magic_link_token", boom)
        assert auth_service.verify_magic_link("abc") is None

    def test_event_write_failure_still_issues_session(
        self, auth_service, business, fake_db, mock_security_logger
    ):
        token = self._request(auth_service, fake_db)

        def fail_on_session_created(event, **fields):
            if event == SecurityEvent.SESSION_CREATED:
                raise RuntimeError("security_events insert failed")

        mock_security_logger.log.side_effect = fail_on_session_created

        session = auth_service.login_with_magic_link(token, IP, UA)

        assert session is not None
        assert session.token in fake_db.sessions["owner"]
        assert len(fake_db.sessions["owner"]) == 1


class TestGetOwner:

    def test_returns_active_business(self, auth_service, owner_credential):
        result = auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)
        assert isinstance(auth_service.get_owner(result.session), Business)

    def test_inactive_business_is_none(self, auth_service, owner_credential, business):
        result = auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)
        business.status = "closed"
        assert auth_service.get_owner(result.session) is None


class TestLogout:

    def test_deletes_session(self, auth_service, owner_credential, fake_db, mock_security_logger):
        result = auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)

        auth_service.logout(result.session.token, IP)

        assert result.session.token not in fake_db.sessions["owner"]
        assert SecurityEvent.SESSION_REVOKED in _logged_events(mock_security_logger)

    def test_idempotent(self, auth_service, owner_credential):
        result = auth_service.login_with_password(TEST_BUSINESS_EMAIL, STRONG_PASSWORD, IP, UA)
        auth_service.logout(result.session.token, IP)
        auth_service.logout(result.session.token, IP)
        auth_service.logout(None, IP)
