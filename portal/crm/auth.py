"""
Staff password. One shared password unlocks the portal; it lives in the
settings table so it can be changed without a redeploy.
"""

import hmac
import logging

from portal.core.db import get_setting, set_setting, DEFAULT_APP_PASSWORD
from portal.core.secrets import get_key

log = logging.getLogger("lava.auth")

MIN_PASSWORD_LENGTH = 6


def current_password() -> str:
    return get_setting("app_password") or get_key("app_password") or DEFAULT_APP_PASSWORD


def check_password(password: str) -> bool:
    if not password:
        return False
    return hmac.compare_digest(password.encode("utf-8"), current_password().encode("utf-8"))


def change_password(current: str, new: str) -> None:
    """Raises ValueError when the current password is wrong or the new one too short."""
    if not check_password(current):
        log.warning("Password change rejected: current password incorrect")
        raise ValueError("Current password is incorrect")
    if not new or len(new) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters")
    set_setting("app_password", new)
    log.info("App password changed")
