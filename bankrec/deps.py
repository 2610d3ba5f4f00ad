"""Common FastAPI dependencies for consistent type annotations.

Tenant resolution is handled upstream; the gateway forwards the resolved
company in ``X-Company-ID`` and, when known, the acting user in ``X-User-ID``.

Usage:
    from bankrec.deps import CurrentCompanyId, DbSession

    async def my_endpoint(db: DbSession, company_id: CurrentCompanyId):
        ...
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from bankrec.database import get_db


async def get_current_company_id(
    x_company_id: Annotated[UUID, Header(alias="X-Company-ID")],
) -> UUID:
    return x_company_id


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-ID")] = None,
) -> str | None:
    return x_user_id or None


DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentCompanyId = Annotated[UUID, Depends(get_current_company_id)]
CurrentUserId = Annotated[str | None, Depends(get_current_user_id)]

__all__ = ["CurrentCompanyId", "CurrentUserId", "DbSession"]
