"""Request-scoped tenant and actor resolution.

Authentication happens upstream; the gateway forwards the resolved tenant and
user as headers.
"""

from typing import Optional

from fastapi import Header

from libs.common.errors import AppError

TENANT_HEADER = "X-Tenant-ID"
ACTOR_HEADER = "X-User-ID"


async def get_tenant_id(
    x_tenant_id: Optional[str] = Header(default=None, alias=TENANT_HEADER),
) -> str:
    if not x_tenant_id:
        raise AppError.validation(f"{TENANT_HEADER} header is required")
    return x_tenant_id


async def get_actor_id(
    x_user_id: Optional[str] = Header(default=None, alias=ACTOR_HEADER),
) -> Optional[str]:
    return x_user_id
