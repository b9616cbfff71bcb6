"""
Identity resolution for the REST surface.

Session issuance happens upstream; requests reach this backend with the
caller's identity in ``X-User-Id`` and the home it is acting on in
``X-Home-Id``. With auth disabled (local development) every request acts
as a local user in the configured home.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from .config import settings


@dataclass
class UserContext:
    user_id: str
    home_id: str
    username: Optional[str] = None


LOCAL_USER_ID = "local"


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_home_id: Optional[str] = Header(None, alias="X-Home-Id"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
) -> UserContext:
    user_id = (x_user_id or "").strip()
    home_id = (x_home_id or "").strip() or settings.home_id
    if settings.auth_disabled:
        return UserContext(user_id=user_id or LOCAL_USER_ID, home_id=home_id, username=x_user_name)
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user identity")
    return UserContext(user_id=user_id, home_id=home_id, username=x_user_name)
