"""Security middleware for FastAPI - session validation, CSRF and admin context."""

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.admin_service import AdminAuthService
from auth.csrf import CSRF_HEADER, CsrfProtector
from auth.exceptions import SessionExpiredError
from auth.service import AuthService
from auth.session import SessionManager
from auth.types import Session
from utils.user_context import clear_current_admin_id, set_current_admin_id

logger = logging.getLogger(__name__)


def _reject(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(
            code,
            message,
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(mode="json"),
    )


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """
    Requires a valid session cookie on protected paths.

    For protected routes:
    1. Extracts the session token from the policy's cookie
    2. Validates the session via SessionManager
    3. Resolves the principal (subclass hook) and stores it in request.state
    4. Clears any context after the request completes

    Paths outside PROTECTED_PREFIXES, or listed in PUBLIC_PATHS, pass through.
    """

    PROTECTED_PREFIXES: tuple[str, ...] = ()
    PUBLIC_PATHS: tuple[str, ...] = ()

    def __init__(self, app, session_manager: SessionManager):
        super().__init__(app)
        self._session_manager = session_manager

    def _is_protected(self, path: str) -> bool:
        if path in self.PUBLIC_PATHS:
            return False
        return any(path == prefix or path.startswith(prefix + "/") for prefix in self.PROTECTED_PREFIXES)

    def _authorize(self, request: Request, session: Session) -> JSONResponse | None:
        """Resolve the principal. Return a response to reject the request."""
        return None

    def _clear_context(self) -> None:
        pass

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if not self._is_protected(request.url.path):
            return await call_next(request)

        session_token = request.cookies.get(self._session_manager.cookie_name)
        if not session_token:
            return _reject(request, 401, ErrorCodes.NOT_AUTHENTICATED, "Unauthorized")

        try:
            session = self._session_manager.validate_session(session_token)
        except SessionExpiredError:
            return _reject(request, 401, ErrorCodes.SESSION_EXPIRED, "Session has expired")

        request.state.session = session

        rejection = self._authorize(request, session)
        if rejection is not None:
            return rejection

        try:
            return await call_next(request)
        finally:
            self._clear_context()


class OwnerAuthMiddleware(SessionAuthMiddleware):
    """Business owner routes. Sets request.state.owner_email and request.state.business."""

    PROTECTED_PREFIXES = ("/api/owner", "/api/auth/me")

    def __init__(self, app, auth_service: AuthService):
        super().__init__(app, auth_service.session_manager)
        self._auth_service = auth_service

    def _authorize(self, request: Request, session: Session) -> JSONResponse | None:
        business = self._auth_service.get_owner(session)
        if business is None:
            logger.warning(f"Owner session for inactive business: {session.subject}")
            return _reject(request, 401, ErrorCodes.SESSION_EXPIRED, "Session has expired")

        request.state.owner_email = session.subject
        request.state.business = business
        return None


class AdminAuthMiddleware(SessionAuthMiddleware):
    """
    Admin routes.

    Sets request.state.admin and binds the admin ID to the audit context.
    State-changing requests must also carry a CSRF token bound to the
    admin session in the X-CSRF-Token header.
    """

    PROTECTED_PREFIXES = ("/api/admin",)
    PUBLIC_PATHS = ("/api/admin/login", "/api/admin/logout")
    SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

    def __init__(self, app, admin_service: AdminAuthService, csrf: CsrfProtector):
        super().__init__(app, admin_service.session_manager)
        self._admin_service = admin_service
        self._csrf = csrf

    def _authorize(self, request: Request, session: Session) -> JSONResponse | None:
        admin = self._admin_service.get_admin(session)
        if admin is None:
            return _reject(request, 401, ErrorCodes.SESSION_EXPIRED, "Session has expired")

        if request.method not in self.SAFE_METHODS:
            if not self._csrf.is_valid(session.token, request.headers.get(CSRF_HEADER)):
                logger.warning(f"CSRF validation failed for admin {admin.username} on {request.url.path}")
                return _reject(request, 403, ErrorCodes.CSRF_INVALID, "CSRF token invalid or missing")

        request.state.admin = admin
        set_current_admin_id(str(admin.id))
        return None

    def _clear_context(self) -> None:
        clear_current_admin_id()
