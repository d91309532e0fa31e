"""FastAPI application entry point.

Wires the Postgres-backed auth stores, the rate limiters, mail, and the
HTTP routers into one app. Run with:

    python main.py
    uvicorn main:create_app --factory
"""

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from api.base import success_response
from api.errors import register_error_handlers
from api.middleware import RequestContextMiddleware
from api.owner import create_owner_router
from auth.admin_api import create_admin_router
from auth.admin_service import AdminAuthService
from auth.api import create_auth_router
from auth.config import AuthConfig
from auth.csrf import CsrfProtector
from auth.database import AuthDatabase
from auth.password_reset import PasswordResetService
from auth.passwords import PasswordHasher
from auth.rate_limiter import CounterStore, InMemoryCounterStore, RateLimiter, ValkeyCounterStore
from auth.security_logger import SecurityLogger
from auth.security_middleware import AdminAuthMiddleware, OwnerAuthMiddleware
from auth.service import AuthService
from auth.session import SessionManager, SessionPolicy
from clients.email_client import EmailConfig, Mailer
from clients.postgres_client import PostgresClient, get_postgres_client
from core.audit import AuditLogger
from core.services.business_service import BusinessService
from core.services.redemption_service import RedemptionService

logger = logging.getLogger(__name__)


def build_counter_store(backend: str | None = None) -> CounterStore:
    """
    Counter store named by RATE_LIMIT_BACKEND: "memory" (default) or "valkey".

    Raises:
        ValueError: Unknown backend name
    """
    backend = (backend or os.getenv("RATE_LIMIT_BACKEND") or "memory").lower()

    if backend == "memory":
        return InMemoryCounterStore()

    if backend == "valkey":
        from clients.valkey_client import ValkeyClient
        from clients.vault_client import get_valkey_url

        return ValkeyCounterStore(ValkeyClient(get_valkey_url()))

    raise ValueError(f"Unknown RATE_LIMIT_BACKEND: {backend}")


def create_app(
    config: AuthConfig | None = None,
    postgres: PostgresClient | None = None,
    mailer: Mailer | None = None,
    counter_store: CounterStore | None = None,
    hasher: PasswordHasher | None = None,
    auth_db: AuthDatabase | None = None,
) -> FastAPI:
    """
    Create and configure the application.

    Every collaborator can be injected; anything omitted is built from the
    environment.
    """
    if config is None:
        config = AuthConfig.from_env()
    if postgres is None:
        postgres = get_postgres_client()
    if mailer is None:
        mailer = Mailer.from_config(EmailConfig.from_env())
    if counter_store is None:
        counter_store = build_counter_store()
    if hasher is None:
        hasher = PasswordHasher()

    if auth_db is None:
        auth_db = AuthDatabase(postgres)
    security_logger = SecurityLogger(postgres)
    audit = AuditLogger(postgres)
    csrf = CsrfProtector(config.csrf_secret)

    owner_sessions = SessionManager(auth_db, SessionPolicy.owner(config))
    admin_sessions = SessionManager(auth_db, SessionPolicy.admin(config))

    login_window = config.rate_limit_window_minutes * 60
    owner_limiter = RateLimiter(counter_store, config.rate_limit_attempts, login_window, "login")
    magic_link_limiter = RateLimiter(
        counter_store, config.magic_link_requests_per_window, login_window, "magic_link"
    )
    reset_limiter = RateLimiter(counter_store, config.rate_limit_attempts, login_window, "reset")
    admin_limiter = RateLimiter(
        counter_store,
        config.admin_rate_limit_attempts,
        config.admin_rate_limit_window_minutes * 60,
        "admin",
    )

    auth_service = AuthService(
        config=config,
        auth_db=auth_db,
        session_manager=owner_sessions,
        rate_limiter=owner_limiter,
        magic_link_limiter=magic_link_limiter,
        mailer=mailer,
        security_logger=security_logger,
        hasher=hasher,
    )
    reset_service = PasswordResetService(
        config=config,
        auth_db=auth_db,
        session_manager=owner_sessions,
        rate_limiter=reset_limiter,
        mailer=mailer,
        security_logger=security_logger,
        hasher=hasher,
    )
    admin_service = AdminAuthService(
        config=config,
        auth_db=auth_db,
        session_manager=admin_sessions,
        rate_limiter=admin_limiter,
        audit=audit,
        hasher=hasher,
    )
    business_service = BusinessService(postgres, audit)
    redemption_service = RedemptionService(postgres, business_service, mailer)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        PostgresClient.close_all_pools()
        logger.info("Connection pools closed")

    app = FastAPI(title="Gifty Dashboard API", version="1.0.0", lifespan=lifespan)

    # Last added runs first: request context must be set before session checks
    app.add_middleware(AdminAuthMiddleware, admin_service=admin_service, csrf=csrf)
    app.add_middleware(OwnerAuthMiddleware, auth_service=auth_service)
    app.add_middleware(RequestContextMiddleware)
    register_error_handlers(app)

    app.include_router(create_auth_router(auth_service, reset_service), prefix="/api/auth")
    app.include_router(create_admin_router(admin_service, business_service, csrf), prefix="/api/admin")
    app.include_router(create_owner_router(redemption_service), prefix="/api/owner")

    @app.get("/health")
    def health():
        counters_ok = counter_store.ping()
        return success_response(
            {
                "status": "ok" if counters_ok else "degraded",
                "environment": config.environment,
                "counterStore": "ok" if counters_ok else "unavailable",
            }
        )

    logger.info(f"Application created ({config.environment})")
    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=False,
    )
