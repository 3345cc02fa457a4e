"""Caller identity.

Tokens are issued and verified by the upstream gateway, which forwards the
authenticated user's id in ``X-User-ID``. This module only reads it.
"""

from typing import Annotated

from fastapi import Header

from vps_dashboard.core.exceptions import UnauthenticatedError


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-ID")] = None,
) -> str:
    if not x_user_id or not x_user_id.strip():
        raise UnauthenticatedError()
    return x_user_id.strip()
