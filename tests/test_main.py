# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Application wiring from settings."""

from datetime import timedelta

from p3academy_server import main
from p3academy_server.config import Settings
from p3academy_server.services.email import ConsoleMailer, SmtpMailer


def test_reset_service_follows_settings():
    service = main.build_password_reset_service(
        Settings(
            _env_file=None,
            reset_token_ttl_minutes=15,
            reset_revoke_other_tokens=False,
            client_base_url="https://learn.p3.sg",
        )
    )
    assert service.store.ttl == timedelta(minutes=15)
    assert service.revoke_other_tokens is False
    assert service.client_base_url == "https://learn.p3.sg"
    assert isinstance(service.notifier, ConsoleMailer)


def test_reset_service_defaults():
    service = main.build_password_reset_service(Settings(_env_file=None, mailer="smtp", smtp_host="mail.local"))
    assert service.store.ttl == timedelta(minutes=60)
    assert service.revoke_other_tokens is True
    assert isinstance(service.notifier, SmtpMailer)


def test_run_serves_on_configured_host_and_port(monkeypatch):
    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setattr(main.settings, "host", "127.0.0.1")
    monkeypatch.setattr(main.settings, "port", 9123)
    main.run()
    assert calls == [(main.app, {"host": "127.0.0.1", "port": 9123})]
