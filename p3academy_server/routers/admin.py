# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin API: account listing and role management."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from p3academy_server.api.schemas import RoleUpdate, UserResponse
from p3academy_server.auth import Identity, require_role
from p3academy_server.database import get_db
from p3academy_server.models import User
from p3academy_server.roles import Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

require_admin = require_role(Role.ADMIN)


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    role: Role | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    _: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[UserResponse]:
    """List accounts, optionally filtered by role."""
    q = select(User).order_by(User.id).limit(limit).offset(offset)
    if role is not None:
        q = q.where(User.role == role.value)
    result = await db.execute(q)
    return [UserResponse.model_validate(u) for u in result.scalars().all()]


@router.patch("/users/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: int,
    data: RoleUpdate,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Change an account's role.

    Sessions already issued keep the role they were signed with; the new role
    applies from the user's next login.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    previous = user.role
    user.role = data.role.value
    await db.commit()
    await db.refresh(user)
    logger.info("Admin %s changed role of user %s: %s -> %s", admin.id, user.id, previous, user.role)
    return UserResponse.model_validate(user)
