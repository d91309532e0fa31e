"""Propagate the authenticated admin's identity through the call stack."""

from contextlib import contextmanager
from contextvars import ContextVar

_current_admin_id: ContextVar[str | None] = ContextVar("current_admin_id", default=None)


def get_current_admin_id() -> str | None:
    """
    Admin user ID for the current request, or None outside an admin request.

    Audit entries written during admin login happen before a session exists,
    so callers there pass the ID explicitly instead of relying on this.
    """
    return _current_admin_id.get()


def set_current_admin_id(admin_id: str) -> None:
    """Set current admin ID. Called by the admin session middleware."""
    _current_admin_id.set(admin_id)


def clear_current_admin_id() -> None:
    """
    Clear admin context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_admin_id.set(None)


@contextmanager
def admin_context(admin_id: str):
    """
    Temporarily act as an admin.

    Example:
        with admin_context(admin.id):
            business_service.delete_businesses(ids)
    """
    previous = _current_admin_id.get()
    set_current_admin_id(admin_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_admin_id()
        else:
            set_current_admin_id(previous)
