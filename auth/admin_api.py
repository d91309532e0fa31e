"""HTTP routes for administrators."""

import logging

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, Field

from api.base import success_response
from auth.admin_service import AdminAuthService
from auth.csrf import CsrfProtector
from auth.types import AdminLoginRequest
from core.services.business_service import BusinessService

logger = logging.getLogger(__name__)


class DeleteBusinessesRequest(BaseModel):
    business_ids: list[str] = Field(default_factory=list, alias="businessIds")

    model_config = {"populate_by_name": True}


class BusinessCredentialsRequest(BaseModel):
    email: str = ""
    action: str = ""


def create_admin_router(
    admin_service: AdminAuthService,
    business_service: BusinessService,
    csrf: CsrfProtector,
) -> APIRouter:
    """
    Create admin router with injected services.

    Everything except login and logout sits behind AdminAuthMiddleware,
    which also enforces CSRF on state-changing methods.
    """
    router = APIRouter(tags=["admin"])
    sessions = admin_service.session_manager

    def _request_id(request: Request) -> str | None:
        return getattr(request.state, "request_id", None)

    @router.post("/login")
    async def login(request: Request, response: Response, body: AdminLoginRequest):
        result = admin_service.login(
            username=body.username,
            password=body.password,
            ip_address=getattr(request.state, "client_ip", None),
            user_agent=getattr(request.state, "user_agent", None),
        )
        sessions.set_cookie(response, result.session)
        return success_response({"message": "Login successful"}, request_id=_request_id(request))

    @router.post("/logout")
    async def logout(request: Request, response: Response):
        """Delete the admin session and expire the cookie. Always succeeds."""
        try:
            admin_service.logout(
                request.cookies.get(sessions.cookie_name),
                ip_address=getattr(request.state, "client_ip", None),
                user_agent=getattr(request.state, "user_agent", None),
            )
        except Exception:
            logger.exception("Error deleting admin session during logout")

        sessions.clear_cookie(response)
        return success_response({"message": "Logged out successfully"}, request_id=_request_id(request))

    @router.get("/csrf-token")
    async def get_csrf_token(request: Request):
        """CSRF token for the current admin session."""
        return success_response(
            {"csrfToken": csrf.generate_token(request.state.session.token)},
            request_id=_request_id(request),
        )

    @router.delete("/businesses")
    async def delete_businesses(request: Request, body: DeleteBusinessesRequest):
        deleted = business_service.delete_businesses(
            body.business_ids,
            ip_address=getattr(request.state, "client_ip", None),
            user_agent=getattr(request.state, "user_agent", None),
        )
        return success_response(
            {
                "message": "Businesses and associated records deleted successfully",
                "deleted": deleted,
            },
            request_id=_request_id(request),
        )

    @router.post("/business-credentials")
    async def reset_business_credentials(request: Request, body: BusinessCredentialsRequest):
        """Issue a temporary password. It is shown once and never stored in plain text."""
        temp_password = admin_service.reset_business_credentials(
            email=body.email,
            action=body.action,
            ip_address=getattr(request.state, "client_ip", None),
            user_agent=getattr(request.state, "user_agent", None),
        )
        return success_response(
            {
                "message": "Password reset successfully",
                "email": body.email.strip().lower(),
                "tempPassword": temp_password,
            },
            request_id=_request_id(request),
        )

    return router
