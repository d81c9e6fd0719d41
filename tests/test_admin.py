# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Role-guarded admin endpoints."""

from tests.conftest import bearer, login


async def test_admin_routes_require_admin_role(client, student, admin_user):
    student_session = (await login(client, "user@x.com", "OldPass123"))["access_token"]
    r = await client.get("/api/admin/users", headers=bearer(student_session))
    assert r.status_code == 403

    r = await client.get("/api/admin/users")
    assert r.status_code == 401

    admin = await login(client, "admin@x.com", "AdminPass1")
    assert admin["redirect"] == "/admin/dashboard"
    r = await client.get("/api/admin/users", headers=bearer(admin["access_token"]))
    assert r.status_code == 200
    assert {u["email"] for u in r.json()} == {"user@x.com", "admin@x.com"}

    r = await client.get("/api/admin/users?role=student", headers=bearer(admin["access_token"]))
    assert [u["email"] for u in r.json()] == ["user@x.com"]


async def test_role_change_applies_from_next_login(client, student, admin_user):
    old_session = (await login(client, "user@x.com", "OldPass123"))["access_token"]
    admin_session = (await login(client, "admin@x.com", "AdminPass1"))["access_token"]

    r = await client.patch(
        f"/api/admin/users/{student.id}/role",
        json={"role": "supervisor"},
        headers=bearer(admin_session),
    )
    assert r.status_code == 200
    assert r.json()["role"] == "supervisor"

    # the session issued before the change still carries the old role
    r = await client.get("/api/auth/user", headers=bearer(old_session))
    assert r.json()["role"] == "student"
    assert r.json()["redirect"] == "/student/dashboard"

    fresh = await login(client, "user@x.com", "OldPass123")
    assert fresh["redirect"] == "/supervisor/dashboard"


async def test_role_change_unknown_user(client, admin_user):
    admin_session = (await login(client, "admin@x.com", "AdminPass1"))["access_token"]
    r = await client.patch("/api/admin/users/9999/role", json={"role": "admin"}, headers=bearer(admin_session))
    assert r.status_code == 404
