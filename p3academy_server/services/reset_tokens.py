# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Persistence of password reset tokens.

Raw tokens exist only in the email link; rows hold their SHA-256. A token is
consumed by one conditional UPDATE, so of two concurrent redemptions exactly one
sees an affected row.
"""

import hashlib
import secrets
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from p3academy_server.errors import ExpiredToken, InvalidToken, ResetTokenError
from p3academy_server.models import PasswordResetToken

TOKEN_BYTES = 32


def new_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class ResetTokenStore:
    """Reset token rows for one TTL policy. Callers own the session and transaction."""

    def __init__(self, ttl: timedelta):
        self.ttl = ttl

    async def issue(self, db: AsyncSession, user_id: int, now: datetime) -> str:
        """Insert a fresh token for user_id and return the raw token."""
        token = new_token()
        db.add(
            PasswordResetToken(
                user_id=user_id,
                token_hash=hash_token(token),
                created_at=now,
                expires_at=now + self.ttl,
                used=False,
            )
        )
        await db.flush()
        return token

    def dummy_token(self) -> str:
        """Same generation and hashing work as issue(), with nothing stored."""
        return hash_token(new_token())

    async def consume(self, db: AsyncSession, token: str, now: datetime) -> int | None:
        """Mark token used if it is unused and unexpired. Returns its user_id, or None."""
        token_hash = hash_token(token)
        result = await db.execute(
            update(PasswordResetToken)
            .where(
                PasswordResetToken.token_hash == token_hash,
                PasswordResetToken.used == False,  # noqa: E712
                PasswordResetToken.expires_at > now,
            )
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await db.scalar(
            select(PasswordResetToken.user_id).where(PasswordResetToken.token_hash == token_hash)
        )

    async def classify(self, db: AsyncSession, token: str) -> ResetTokenError:
        """Why consume() failed: unknown or used tokens are invalid, the rest expired."""
        row = (
            await db.execute(
                select(PasswordResetToken.used).where(PasswordResetToken.token_hash == hash_token(token))
            )
        ).first()
        if row is None or row.used:
            return InvalidToken()
        return ExpiredToken()

    async def revoke_outstanding(self, db: AsyncSession, user_id: int, now: datetime) -> int:
        """Mark every unused token of user_id as used. Returns how many were revoked."""
        result = await db.execute(
            update(PasswordResetToken)
            .where(
                PasswordResetToken.user_id == user_id,
                PasswordResetToken.used == False,  # noqa: E712
            )
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
