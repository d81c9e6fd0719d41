# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Domain errors and their HTTP translation.

Reset token failures and authentication failures are reported to clients with a
single message each, so a response never tells whether an account, token or
credential exists.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

RESET_FAILURE_CODE = "invalid-or-expired"
RESET_FAILURE_MESSAGE = "Password reset link is invalid or has expired."


class ResetTokenError(Exception):
    """A reset token cannot be redeemed."""


class InvalidToken(ResetTokenError):
    """Token is unknown or was already used."""


class ExpiredToken(ResetTokenError):
    """Token exists and is unused but its TTL has elapsed."""


class Unauthenticated(Exception):
    """Request carries no usable session credential.

    reason is for server logs only: "missing", "malformed", "expired" or "invalid".
    """

    def __init__(self, reason: str = "missing"):
        super().__init__(reason)
        self.reason = reason


class NotificationFailure(Exception):
    """Outbound email could not be delivered."""


async def reset_token_error_handler(request: Request, exc: ResetTokenError) -> JSONResponse:
    logger.info("Password reset rejected: %s", type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": RESET_FAILURE_CODE, "message": RESET_FAILURE_MESSAGE},
    )


async def unauthenticated_handler(request: Request, exc: Unauthenticated) -> JSONResponse:
    logger.debug("Unauthenticated %s %s (%s)", request.method, request.url.path, exc.reason)
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": "Not authenticated"},
        headers={"WWW-Authenticate": "Bearer"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ResetTokenError, reset_token_error_handler)
    app.add_exception_handler(Unauthenticated, unauthenticated_handler)
