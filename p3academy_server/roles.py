# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Account roles and the landing route for each role.

The web client navigates with the same table (published at GET /api/auth/routes),
so both sides always send a user to the same dashboard.
"""

from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    SUPERVISOR = "supervisor"
    ADMIN = "admin"


DEFAULT_ROUTE = "/dashboard"

ROLE_ROUTES: dict[Role, str] = {
    Role.STUDENT: "/student/dashboard",
    Role.SUPERVISOR: "/supervisor/dashboard",
    Role.ADMIN: "/admin/dashboard",
}


def parse_role(value: str | Role | None) -> Role | None:
    """Return the Role for value, or None when it is not a known role."""
    if isinstance(value, Role):
        return value
    if not value:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


def redirect_for(role: str | Role | None) -> str:
    """Landing route for a role. Unknown or missing roles get DEFAULT_ROUTE."""
    parsed = parse_role(role)
    if parsed is None:
        return DEFAULT_ROUTE
    return ROLE_ROUTES.get(parsed, DEFAULT_ROUTE)


def route_table() -> dict[str, str]:
    """Role -> route mapping plus the fallback, as served to clients."""
    table = {role.value: route for role, route in ROLE_ROUTES.items()}
    table["default"] = DEFAULT_ROUTE
    return table
