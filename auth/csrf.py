"""Anti-forgery tokens for state-changing admin requests.

The token is an HMAC of the admin session token, so it needs no storage:
any request carrying a valid session cookie can have its header token
recomputed and compared.
"""

import hashlib
import hmac

from auth.exceptions import CsrfValidationError

CSRF_HEADER = "X-CSRF-Token"


class CsrfProtector:
    """Issue and verify session-bound CSRF tokens."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("CSRF secret is required")
        self._secret = secret.encode("utf-8")

    def generate_token(self, session_token: str) -> str:
        """64-char hex HMAC-SHA256 of the session token."""
        return hmac.new(self._secret, session_token.encode("utf-8"), hashlib.sha256).hexdigest()

    def is_valid(self, session_token: str | None, csrf_token: str | None) -> bool:
        if not session_token or not csrf_token:
            return False
        expected = self.generate_token(session_token)
        return hmac.compare_digest(expected, csrf_token)

    def verify(self, session_token: str | None, csrf_token: str | None) -> None:
        """
        Raises:
            CsrfValidationError: If the token is missing or not bound to the session
        """
        if not self.is_valid(session_token, csrf_token):
            raise CsrfValidationError("Invalid or missing CSRF token")
