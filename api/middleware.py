"""Request-scoped middleware for API requests."""

import ipaddress
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


def _valid_ip(value: str | None) -> str | None:
    if not value:
        return None
    value = value.strip()
    try:
        ipaddress.ip_address(value)
        return value
    except ValueError:
        return None


def get_client_ip(request: Request) -> str | None:
    """
    Client IP from proxy headers or the socket peer.

    Checks X-Forwarded-For (first hop), then X-Real-IP, then the connection.
    Values that are not valid IP addresses are ignored.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = _valid_ip(forwarded.split(",")[0])
        if ip:
            return ip

    ip = _valid_ip(request.headers.get("x-real-ip"))
    if ip:
        return ip

    if request.client:
        return _valid_ip(request.client.host)
    return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Assigns a unique request ID to every request and records who is calling.

    Sets request.state.request_id, request.state.client_ip and
    request.state.user_agent for routes and later middleware.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        request.state.client_ip = get_client_ip(request)
        request.state.user_agent = request.headers.get("user-agent")
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
