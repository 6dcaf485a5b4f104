"""Tests for rate limits on the authentication endpoints."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.core.config import settings
from app.main import app
from app.models.audit import AuditLog
from app.security.rate_limit import InMemoryRateLimitStore, get_rate_limit_store
from tests.helpers.auth_flow import API, login


class TestLoginLimits:
    def test_login_blocked_after_ip_limit(self, client: TestClient, exempt_user) -> None:
        for _ in range(settings.RL_LOGIN_IP_LIMIT):
            assert login(client, exempt_user.email, password="WrongPass999").status_code == 401

        response = login(client, exempt_user.email)

        assert response.status_code == 429
        body = response.json()["error"]
        assert body["code"] == "RATE_LIMITED"
        assert int(response.headers["Retry-After"]) > 0
        assert body["details"]["retry_after_seconds"] == int(response.headers["Retry-After"])

    def test_email_limit_spans_client_addresses(
        self, client: TestClient, exempt_user, monkeypatch
    ) -> None:
        # Behind one proxy, each attempt arrives from a different client address
        monkeypatch.setattr(settings, "TRUSTED_PROXY_COUNT", 1)
        monkeypatch.setattr(settings, "RL_LOGIN_IP_LIMIT", 1000)

        for n in range(settings.RL_LOGIN_EMAIL_LIMIT):
            response = client.post(
                f"{API}/auth/login",
                json={"email": exempt_user.email, "password": "WrongPass999"},
                headers={"X-Forwarded-For": f"10.0.0.{n + 1}"},
            )
            assert response.status_code == 401

        blocked = client.post(
            f"{API}/auth/login",
            json={"email": exempt_user.email.upper(), "password": "WrongPass999"},
            headers={"X-Forwarded-For": "10.0.1.1"},
        )

        assert blocked.status_code == 429

    def test_limits_are_per_ip(self, client: TestClient, exempt_user, monkeypatch) -> None:
        monkeypatch.setattr(settings, "TRUSTED_PROXY_COUNT", 1)
        for _ in range(settings.RL_LOGIN_IP_LIMIT):
            client.post(
                f"{API}/auth/login",
                json={"email": "nobody@example.com", "password": "WrongPass999"},
                headers={"X-Forwarded-For": "198.51.100.7"},
            )

        response = client.post(
            f"{API}/auth/login",
            json={"email": exempt_user.email, "password": "TestPass123"},
            headers={"X-Forwarded-For": "203.0.113.9"},
        )

        assert response.status_code == 200

    def test_forwarded_header_ignored_without_trusted_proxy(
        self, client: TestClient, exempt_user
    ) -> None:
        for n in range(settings.RL_LOGIN_IP_LIMIT):
            client.post(
                f"{API}/auth/login",
                json={"email": exempt_user.email, "password": "WrongPass999"},
                headers={"X-Forwarded-For": f"10.9.0.{n + 1}"},
            )

        response = client.post(
            f"{API}/auth/login",
            json={"email": exempt_user.email, "password": "TestPass123"},
            headers={"X-Forwarded-For": "10.9.1.1"},
        )

        assert response.status_code == 429

    def test_client_supplied_hops_left_of_proxy_ignored(
        self, client: TestClient, exempt_user, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings, "TRUSTED_PROXY_COUNT", 1)
        for n in range(settings.RL_LOGIN_IP_LIMIT):
            client.post(
                f"{API}/auth/login",
                json={"email": exempt_user.email, "password": "WrongPass999"},
                headers={"X-Forwarded-For": f"10.9.0.{n + 1}, 198.51.100.7"},
            )

        response = client.post(
            f"{API}/auth/login",
            json={"email": exempt_user.email, "password": "TestPass123"},
            headers={"X-Forwarded-For": "10.9.1.1, 198.51.100.7"},
        )

        assert response.status_code == 429

    def test_blocked_attempt_does_not_check_password(self, client: TestClient, db: Session, exempt_user) -> None:
        for _ in range(settings.RL_LOGIN_IP_LIMIT):
            login(client, exempt_user.email, password="WrongPass999")

        login(client, exempt_user.email)

        assert db.query(AuditLog).filter(AuditLog.action == "login").count() == 0


class TestOtherLimits:
    def test_two_factor_verify_limited(self, client: TestClient, two_factor_user) -> None:
        user, _, _ = two_factor_user
        login(client, user.email)

        statuses = [
            client.post(f"{API}/auth/2fa/verify", json={"userId": user.id, "code": "ABCD-0000"}).status_code
            for _ in range(settings.RL_2FA_IP_LIMIT + 1)
        ]

        assert statuses[:-1] == [400] * settings.RL_2FA_IP_LIMIT
        assert statuses[-1] == 429

    def test_two_factor_verify_limit_survives_rotated_forwarded_for(
        self, client: TestClient, two_factor_user
    ) -> None:
        user, _, _ = two_factor_user
        login(client, user.email)

        statuses = [
            client.post(
                f"{API}/auth/2fa/verify",
                json={"userId": user.id, "code": "ABCD-0000"},
                headers={"X-Forwarded-For": f"192.0.2.{n + 1}"},
            ).status_code
            for n in range(settings.RL_2FA_IP_LIMIT + 5)
        ]

        assert statuses.count(429) == 5

    def test_recovery_limit_survives_rotated_forwarded_for(self, client: TestClient) -> None:
        payload = {"email": "someone@example.com", "recoveryCode": "0" * 64}

        statuses = [
            client.post(
                f"{API}/auth/recover-password/verify-email",
                json=payload,
                headers={"X-Forwarded-For": f"192.0.2.{n + 1}"},
            ).status_code
            for n in range(settings.RL_RECOVERY_IP_LIMIT + 1)
        ]

        assert statuses[-1] == 429

    def test_recovery_limited(self, client: TestClient) -> None:
        payload = {"email": "someone@example.com", "recoveryCode": "0" * 64}

        statuses = [
            client.post(f"{API}/auth/recover-password/verify-email", json=payload).status_code
            for _ in range(settings.RL_RECOVERY_IP_LIMIT + 1)
        ]

        assert statuses[-1] == 429
        assert set(statuses[:-1]) == {401}

    def test_register_limited(self, client: TestClient) -> None:
        statuses = []
        for n in range(settings.RL_REGISTER_IP_LIMIT + 1):
            response = client.post(
                f"{API}/auth/register",
                json={"username": f"reader{n}", "email": f"reader{n}@example.com", "password": "Welcome123"},
            )
            statuses.append(response.status_code)

        assert statuses[:-1] == [201] * settings.RL_REGISTER_IP_LIMIT
        assert statuses[-1] == 429


@pytest.mark.parametrize("limit", [1, 3])
def test_window_expiry_allows_again(client: TestClient, exempt_user, monkeypatch, limit: int) -> None:
    """A fresh window resets the counter."""
    clock = {"now": 1000.0}
    store = InMemoryRateLimitStore(clock=lambda: clock["now"])

    app.dependency_overrides[get_rate_limit_store] = lambda: store
    monkeypatch.setattr(settings, "RL_LOGIN_IP_LIMIT", limit)

    for _ in range(limit):
        login(client, exempt_user.email, password="WrongPass999")
    assert login(client, exempt_user.email).status_code == 429

    clock["now"] += settings.RL_LOGIN_IP_WINDOW
    assert login(client, exempt_user.email).status_code == 200
