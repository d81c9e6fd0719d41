# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Database models."""

from p3academy_server.models.base import Base
from p3academy_server.models.user import User
from p3academy_server.models.password_reset import PasswordResetToken

__all__ = [
    "Base",
    "User",
    "PasswordResetToken",
]
