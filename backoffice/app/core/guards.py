"""
Role guards for the three audiences: admins, merchants and customers.

`get_current_user` has already replaced the token's role with the stored
one, so these guards only compare roles.
"""

from typing import Iterable
from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.models.enums import UserRole
from backoffice.app.models.provider import Provider
from backoffice.app.core.dependencies import get_current_user
from backoffice.app.db.session import get_db


def require_role(allowed_roles: Iterable[UserRole]):
    """
    Dependency factory: let the request through only for the given roles.

    Usage:
        current_user: dict = Depends(require_role([UserRole.CUSTOMER]))
    """
    allowed = {role.value for role in allowed_roles}

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user.get("role") not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join(sorted(allowed))}"
            )
        return current_user

    return role_checker


require_admin = require_role([UserRole.ADMIN])


async def get_current_provider(
    current_user: dict = Depends(require_role([UserRole.PROVIDER])),
    db: AsyncSession = Depends(get_db)
) -> Provider:
    """
    The store owned by the authenticated merchant.

    Raises:
        HTTPException 403 if the merchant has no store yet
    """
    result = await db.execute(
        select(Provider).where(Provider.owner_id == current_user["user_id"]).order_by(Provider.id)
    )
    provider = result.scalars().first()

    if not provider:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No store is linked to this account"
        )

    return provider
