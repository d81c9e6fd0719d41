#!/usr/bin/env python3
# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Create an admin account. Run: python -m p3academy_server.scripts.create_admin"""

import asyncio
import getpass
import sys

from sqlalchemy import select

from p3academy_server.api.schemas import check_password_strength
from p3academy_server.auth import hash_password, normalize_email
from p3academy_server.database import async_session_maker, init_db
from p3academy_server.models import User
from p3academy_server.roles import Role


async def main():
    await init_db()
    email = normalize_email(input("Admin email: "))
    first_name = input("First name: ").strip()
    last_name = input("Last name: ").strip()
    password = getpass.getpass("Password: ")
    if not email or not password:
        print("Email and password required")
        sys.exit(1)
    try:
        check_password_strength(password)
    except ValueError as e:
        print(e)
        sys.exit(1)

    async with async_session_maker() as session:
        result = await session.execute(select(User).where(User.email == email))
        if result.scalar_one_or_none():
            print("User already exists")
            sys.exit(1)
        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name or None,
            last_name=last_name or None,
            role=Role.ADMIN.value,
        )
        session.add(user)
        await session.commit()
        print("Admin user created.")


if __name__ == "__main__":
    asyncio.run(main())
