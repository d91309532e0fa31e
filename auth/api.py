"""HTTP routes for business owner authentication."""

import logging

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from api.base import ErrorCodes, error_response, success_response
from api.errors import status_for
from auth.exceptions import AccountInactiveError, InvalidTokenError
from auth.password_reset import PasswordResetService
from auth.service import AuthService
from auth.types import LoginRequest, MagicLinkRequest, PasswordResetConfirm, PasswordResetRequest

logger = logging.getLogger(__name__)

DASHBOARD_PATH = "/owner/dashboard"
LOGIN_PATH = "/owner/login"


def _client(request: Request) -> tuple[str | None, str | None]:
    """(client IP, user agent) recorded by RequestContextMiddleware."""
    return (
        getattr(request.state, "client_ip", None),
        getattr(request.state, "user_agent", None),
    )


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def create_auth_router(auth_service: AuthService, reset_service: PasswordResetService) -> APIRouter:
    """Create owner auth router with injected services."""
    router = APIRouter(tags=["auth"])
    sessions = auth_service.session_manager

    @router.post("/login")
    async def login(request: Request, response: Response, body: LoginRequest):
        """Password login. Sets the owner session cookie on success."""
        ip_address, user_agent = _client(request)
        result = auth_service.login_with_password(
            email=body.email,
            password=body.password,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        sessions.set_cookie(response, result.session)
        return success_response(
            {"message": "Login successful", "user": result.to_user_payload()},
            request_id=_request_id(request),
        )

    @router.post("/logout")
    async def logout(request: Request, response: Response):
        """Logout - delete session and clear cookie. Always succeeds."""
        ip_address, _ = _client(request)
        try:
            auth_service.logout(request.cookies.get(sessions.cookie_name), ip_address)
        except Exception:
            logger.exception("Error deleting owner session during logout")

        sessions.clear_cookie(response)
        return success_response({"message": "Logged out successfully"}, request_id=_request_id(request))

    @router.post("/request-magic-link")
    async def request_magic_link(request: Request, body: MagicLinkRequest):
        """Email a login link. Same answer whether or not the account exists."""
        ip_address, user_agent = _client(request)
        message = auth_service.request_magic_link(
            email=body.email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return success_response({"message": message}, request_id=_request_id(request))

    @router.get("/verify")
    async def verify_magic_link(request: Request, token: str = Query(None)):
        """Consume a magic link and redirect to the dashboard or back to login."""
        if not token:
            return RedirectResponse(f"{LOGIN_PATH}?error=invalid_token")

        ip_address, user_agent = _client(request)
        try:
            session = auth_service.login_with_magic_link(token, ip_address, user_agent)
        except Exception:
            logger.exception("Error verifying magic link")
            return RedirectResponse(f"{LOGIN_PATH}?error=verification_failed")

        if session is None:
            return RedirectResponse(f"{LOGIN_PATH}?error=invalid_or_expired_token")

        response = RedirectResponse(DASHBOARD_PATH)
        sessions.set_cookie(response, session)
        return response

    @router.post("/reset-password/request")
    async def request_password_reset(request: Request, body: PasswordResetRequest):
        ip_address, _ = _client(request)
        message = reset_service.request_reset(body.email, ip_address)
        return success_response({"message": message}, request_id=_request_id(request))

    @router.get("/reset-password/verify")
    async def check_reset_token(request: Request, token: str = Query(None)):
        """Tell the reset page whether its token is still usable."""
        try:
            email = reset_service.check_token(token)
        except (InvalidTokenError, AccountInactiveError) as e:
            status_code, code = status_for(e)
            return JSONResponse(
                status_code=status_code,
                content=error_response(
                    code,
                    e.message,
                    data={"valid": False},
                    request_id=_request_id(request),
                ).model_dump(mode="json"),
            )
        return success_response({"valid": True, "email": email}, request_id=_request_id(request))

    @router.post("/reset-password/verify")
    async def complete_password_reset(request: Request, response: Response, body: PasswordResetConfirm):
        """Set the new password and log the owner in."""
        ip_address, user_agent = _client(request)
        result = reset_service.complete_reset(
            token=body.token,
            password=body.password,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        sessions.set_cookie(response, result.session)
        return success_response(
            {"message": "Password reset successful", "user": result.to_user_payload()},
            request_id=_request_id(request),
        )

    @router.get("/me")
    async def get_current_owner(request: Request):
        """
        Get the logged-in owner.

        Requires authentication (OwnerAuthMiddleware sets request.state).
        """
        business = getattr(request.state, "business", None)
        if business is None:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Unauthorized",
                    request_id=_request_id(request),
                ).model_dump(mode="json"),
            )

        return success_response(
            {
                "user": {
                    "email": request.state.owner_email,
                    "businessId": str(business.id),
                    "businessName": business.name,
                }
            },
            request_id=_request_id(request),
        )

    return router
