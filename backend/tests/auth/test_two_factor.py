"""Tests for 2FA verification, staged enrollment and management."""

import re

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.models.two_factor import TwoFactorBackupCode, TwoFactorSecret
from tests.helpers.auth_flow import (
    API,
    login,
    login_with_two_factor,
    pending_cookie,
    session_cookie,
)
from tests.helpers.seed import TEST_PASSWORD, totp_code

BACKUP_CODE_FORMAT = re.compile(r"^[0-9A-F]{4}-[0-9A-F]{4}$")


class TestVerify:
    """Second login step."""

    def test_totp_code_issues_session(self, client: TestClient, two_factor_user) -> None:
        user, secret, backup_codes = two_factor_user

        response = login_with_two_factor(client, user.email, totp_code(secret))

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["user"]["id"] == user.id
        assert data["user"]["twoFactorEnabled"] is True
        assert data["usedBackupCode"] is False
        assert data["backupCodesRemaining"] == len(backup_codes)
        assert session_cookie(client) is not None
        assert pending_cookie(client) is None

    def test_verify_without_pending_cookie_is_rejected(self, client: TestClient, two_factor_user) -> None:
        user, secret, _ = two_factor_user

        response = client.post(
            f"{API}/auth/2fa/verify",
            json={"userId": user.id, "code": totp_code(secret)},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHENTICATED"
        assert session_cookie(client) is None

    def test_verify_for_another_user_is_rejected(self, client: TestClient, two_factor_user) -> None:
        user, secret, _ = two_factor_user
        login(client, user.email)

        response = client.post(
            f"{API}/auth/2fa/verify",
            json={"userId": user.id + 1, "code": totp_code(secret)},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHENTICATED"

    def test_wrong_code_is_rejected(self, client: TestClient, two_factor_user) -> None:
        user, _, _ = two_factor_user

        response = login_with_two_factor(client, user.email, "ABCD-0000")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CODE"

    def test_code_outside_window_is_rejected(self, client: TestClient, two_factor_user) -> None:
        user, secret, _ = two_factor_user

        response = login_with_two_factor(client, user.email, totp_code(secret, step_offset=3))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CODE"
        assert session_cookie(client) is None

    def test_code_from_previous_step_is_accepted(self, client: TestClient, two_factor_user) -> None:
        user, secret, _ = two_factor_user

        response = login_with_two_factor(client, user.email, totp_code(secret, step_offset=-1))

        assert response.status_code == 200

    def test_totp_code_is_accepted_once(self, client: TestClient, two_factor_user) -> None:
        user, secret, _ = two_factor_user
        code = totp_code(secret)

        first = login_with_two_factor(client, user.email, code)
        second = login_with_two_factor(client, user.email, code)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error"]["code"] == "ALREADY_USED"

    def test_older_step_after_newer_is_rejected(self, client: TestClient, two_factor_user) -> None:
        user, secret, _ = two_factor_user

        first = login_with_two_factor(client, user.email, totp_code(secret, step_offset=1))
        second = login_with_two_factor(client, user.email, totp_code(secret, step_offset=-1))

        assert first.status_code == 200
        assert second.status_code == 409

    def test_backup_code_is_single_use(self, client: TestClient, db: Session, two_factor_user) -> None:
        user, _, backup_codes = two_factor_user

        first = login_with_two_factor(client, user.email, backup_codes[0])
        assert first.status_code == 200
        assert first.json()["usedBackupCode"] is True
        assert first.json()["backupCodesRemaining"] == len(backup_codes) - 1

        client.cookies.clear()
        second = login_with_two_factor(client, user.email, backup_codes[0])
        assert second.status_code == 409
        assert second.json()["error"]["code"] == "ALREADY_USED"
        assert session_cookie(client) is None

        db.expire_all()
        used = db.query(TwoFactorBackupCode).filter(TwoFactorBackupCode.used_at.isnot(None)).count()
        assert used == 1

    def test_backup_code_formatting_is_ignored(self, client: TestClient, two_factor_user) -> None:
        user, _, backup_codes = two_factor_user
        sloppy = backup_codes[1].replace("-", " ").lower()

        response = login_with_two_factor(client, user.email, sloppy)

        assert response.status_code == 200
        assert response.json()["usedBackupCode"] is True

    def test_verify_writes_login_audit(self, client: TestClient, db: Session, two_factor_user) -> None:
        user, _, backup_codes = two_factor_user

        login_with_two_factor(client, user.email, backup_codes[0])

        entry = db.query(AuditLog).filter(AuditLog.action == "login").one()
        assert entry.user_id == user.id
        assert entry.details == {"method": "backup_code"}


class TestStagedEnrollment:
    """Setup then enable, for a signed-in user."""

    def test_setup_requires_session(self, client: TestClient) -> None:
        response = client.post(f"{API}/auth/2fa/setup")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHENTICATED"

    def test_setup_stages_without_enabling(self, client: TestClient, db: Session, exempt_user) -> None:
        login(client, exempt_user.email)

        response = client.post(f"{API}/auth/2fa/setup")

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["qrCode"].startswith("data:image/png;base64,")
        assert data["provisioningUri"].startswith("otpauth://totp/")
        assert "issuer=Chirisu" in data["provisioningUri"]
        assert len(data["secret"]) == 32
        assert len(data["backupCodes"]) == 8
        assert all(BACKUP_CODE_FORMAT.match(code) for code in data["backupCodes"])

        record = db.get(TwoFactorSecret, exempt_user.id)
        assert record is not None
        assert record.enabled is False
        assert data["secret"] not in record.secret_encrypted

    def test_setup_then_enable(self, client: TestClient, db: Session, exempt_user) -> None:
        login(client, exempt_user.email)
        secret = client.post(f"{API}/auth/2fa/setup").json()["secret"]

        response = client.post(f"{API}/auth/2fa/enable", json={"code": totp_code(secret)})

        assert response.status_code == 200, response.text
        db.expire_all()
        record = db.get(TwoFactorSecret, exempt_user.id)
        assert record.enabled is True
        assert record.enabled_at is not None
        assert db.query(AuditLog).filter(AuditLog.action == "2fa_enabled").count() == 1

        # The next login now stops at the 2FA step
        client.cookies.clear()
        assert login(client, exempt_user.email).json() == {"requires2FA": True, "userId": exempt_user.id}

    def test_enable_with_wrong_code(self, client: TestClient, db: Session, exempt_user) -> None:
        login(client, exempt_user.email)
        secret = client.post(f"{API}/auth/2fa/setup").json()["secret"]
        wrong = totp_code(secret, step_offset=5)

        response = client.post(f"{API}/auth/2fa/enable", json={"code": wrong})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CODE"
        assert db.get(TwoFactorSecret, exempt_user.id).enabled is False

    def test_enable_without_setup(self, client: TestClient, exempt_user) -> None:
        login(client, exempt_user.email)

        response = client.post(f"{API}/auth/2fa/enable", json={"code": "123456"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_setup_when_already_enabled(self, client: TestClient, two_factor_user) -> None:
        user, _, backup_codes = two_factor_user
        login_with_two_factor(client, user.email, backup_codes[0])

        response = client.post(f"{API}/auth/2fa/setup")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_setup_again_replaces_staged_secret(self, client: TestClient, db: Session, exempt_user) -> None:
        login(client, exempt_user.email)
        first = client.post(f"{API}/auth/2fa/setup").json()
        second = client.post(f"{API}/auth/2fa/setup").json()

        assert first["secret"] != second["secret"]
        assert db.query(TwoFactorBackupCode).filter(TwoFactorBackupCode.user_id == exempt_user.id).count() == 8

        # A code from the abandoned secret does not enable anything
        response = client.post(f"{API}/auth/2fa/enable", json={"code": totp_code(first["secret"])})
        assert response.status_code == 400


class TestForcedEnrollment:
    """Accounts that must enroll before receiving a session."""

    def test_full_setup_flow(self, client: TestClient, db: Session, test_user) -> None:
        first = login(client, test_user.email)
        assert first.json()["requiresSetup"] is True

        material = client.post(f"{API}/auth/2fa/pending-setup", json={"userId": test_user.id})
        assert material.status_code == 200, material.text
        payload = material.json()
        assert re.fullmatch(r"[0-9a-f]{64}", payload["recoveryCode"])
        assert session_cookie(client) is None

        response = client.post(
            f"{API}/auth/verify-registration",
            json={"userId": test_user.id, "code": totp_code(payload["secret"])},
        )

        assert response.status_code == 200, response.text
        assert response.json()["user"]["twoFactorEnabled"] is True
        assert session_cookie(client) is not None
        assert pending_cookie(client) is None
        db.expire_all()
        assert db.get(type(test_user), test_user.id).has_2fa_setup is True

    def test_pending_setup_reuses_staged_secret(self, client: TestClient, test_user) -> None:
        login(client, test_user.email)

        first = client.post(f"{API}/auth/2fa/pending-setup", json={"userId": test_user.id}).json()
        second = client.post(f"{API}/auth/2fa/pending-setup", json={"userId": test_user.id}).json()

        assert first["secret"] == second["secret"]
        assert first["backupCodes"] != second["backupCodes"]
        # Recovery code is only handed out while the account has none
        assert first["recoveryCode"] is not None
        assert second["recoveryCode"] is None

    def test_pending_setup_requires_setup_cookie(self, client: TestClient, two_factor_user) -> None:
        user, _, _ = two_factor_user
        login(client, user.email)  # 2FA pending cookie, not a setup cookie

        response = client.post(f"{API}/auth/2fa/pending-setup", json={"userId": user.id})

        assert response.status_code == 401

    def test_verify_registration_wrong_code(self, client: TestClient, test_user) -> None:
        login(client, test_user.email)
        secret = client.post(f"{API}/auth/2fa/pending-setup", json={"userId": test_user.id}).json()["secret"]

        response = client.post(
            f"{API}/auth/verify-registration",
            json={"userId": test_user.id, "code": totp_code(secret, step_offset=4)},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CODE"
        assert session_cookie(client) is None


class TestManagement:
    def test_disable_requires_password(self, client: TestClient, db: Session, two_factor_user) -> None:
        user, _, backup_codes = two_factor_user
        login_with_two_factor(client, user.email, backup_codes[0])

        response = client.post(f"{API}/auth/2fa/disable", json={"password": "WrongPass999"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"
        db.expire_all()
        assert db.get(TwoFactorSecret, user.id).enabled is True

    def test_disable_removes_secret_and_codes(self, client: TestClient, db: Session, two_factor_user) -> None:
        user, _, backup_codes = two_factor_user
        login_with_two_factor(client, user.email, backup_codes[0])

        response = client.post(f"{API}/auth/2fa/disable", json={"password": TEST_PASSWORD})

        assert response.status_code == 200, response.text
        db.expire_all()
        assert db.get(TwoFactorSecret, user.id) is None
        assert db.query(TwoFactorBackupCode).filter(TwoFactorBackupCode.user_id == user.id).count() == 0
        assert db.query(AuditLog).filter(AuditLog.action == "2fa_disabled").count() == 1

    def test_regenerate_backup_codes_invalidates_old_set(self, client: TestClient, two_factor_user) -> None:
        user, secret, backup_codes = two_factor_user
        login_with_two_factor(client, user.email, backup_codes[0])

        response = client.post(
            f"{API}/auth/2fa/backup-codes/regenerate", json={"code": totp_code(secret)}
        )

        assert response.status_code == 200, response.text
        new_codes = response.json()["backupCodes"]
        assert len(new_codes) == 8
        assert not set(new_codes) & set(backup_codes)

        client.cookies.clear()
        stale = login_with_two_factor(client, user.email, backup_codes[1])
        assert stale.status_code == 400
        assert stale.json()["error"]["code"] == "INVALID_CODE"
