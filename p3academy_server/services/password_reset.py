# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Password reset: issuing reset links and redeeming them."""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from fastapi import BackgroundTasks, Request
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from p3academy_server.auth import hash_password, normalize_email
from p3academy_server.models import User
from p3academy_server.services.email import EmailMessage, Notifier, render_reset_email, reset_link
from p3academy_server.services.reset_tokens import ResetTokenStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PasswordResetService:
    """Built once at startup and shared by all requests (see main.lifespan)."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        store: ResetTokenStore,
        notifier: Notifier,
        client_base_url: str,
        revoke_other_tokens: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_maker = session_maker
        self.store = store
        self.notifier = notifier
        self.client_base_url = client_base_url
        self.revoke_other_tokens = revoke_other_tokens
        self.clock = clock

    @property
    def ttl_minutes(self) -> int:
        return int(self.store.ttl.total_seconds() // 60)

    async def request_reset(self, email: str, background: BackgroundTasks) -> None:
        """Issue a reset link for email if it names an active account.

        Returns None in every case. The email goes out as a background task after
        the response, so delivery problems never reach the caller.
        """
        email = normalize_email(email)
        async with self.session_maker() as db:
            user = await db.scalar(select(User).where(User.email == email, User.is_active == True))  # noqa: E712
            if user is None:
                self.store.dummy_token()
                logger.info("Password reset requested for unknown or inactive account")
                return
            try:
                token = await self.store.issue(db, user.id, self.clock())
                await db.commit()
            except SQLAlchemyError:
                # Reported as success like every other outcome
                logger.exception("Could not store reset token for user %s", user.id)
                await db.rollback()
                return
            user_id, user_name = user.id, user.display_name

        message = render_reset_email(
            to=email,
            reset_url=reset_link(self.client_base_url, token),
            user_name=user_name,
            ttl_minutes=self.ttl_minutes,
        )
        background.add_task(self.send_reset_email, message)
        logger.info("Password reset token issued for user %s", user_id)

    async def send_reset_email(self, message: EmailMessage) -> bool:
        """Hand message to the notifier. Failures are logged, never raised."""
        try:
            sent = await self.notifier.send(message.to, message.subject, message.html_body, message.text_body)
        except Exception:
            logger.exception("Notifier raised while sending password reset email")
            return False
        if not sent:
            logger.warning("Password reset email was not delivered")
        return sent

    async def redeem(self, token: str, new_password: str) -> None:
        """Set a new password with a reset token. Raises InvalidToken or ExpiredToken.

        The token is marked used and the password replaced in one transaction.
        """
        now = self.clock()
        async with self.session_maker() as db, db.begin():
            user_id = await self.store.consume(db, token, now)
            if user_id is None:
                raise await self.store.classify(db, token)
            password_hash = hash_password(new_password)
            await db.execute(update(User).where(User.id == user_id).values(password_hash=password_hash))
            revoked = 0
            if self.revoke_other_tokens:
                revoked = await self.store.revoke_outstanding(db, user_id, now)
        logger.info("Password reset completed for user %s (%d other tokens revoked)", user_id, revoked)

    async def revoke_for_user(self, db: AsyncSession, user_id: int) -> int:
        """Revoke outstanding reset tokens after a password change made another way."""
        if not self.revoke_other_tokens:
            return 0
        return await self.store.revoke_outstanding(db, user_id, self.clock())


def get_password_reset_service(request: Request) -> PasswordResetService:
    """Dependency returning the service built in main.lifespan."""
    return request.app.state.password_reset
