"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, as_utc, is_past, minutes_until, seconds_until
from utils.user_context import (
    get_current_admin_id,
    set_current_admin_id,
    clear_current_admin_id,
    admin_context,
)
