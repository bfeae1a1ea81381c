"""
Tests for the authentication endpoints.
"""

import pytest

from conftest import PASSWORD, FakeMailer, bearer, login, make_settings

NEW_PASSWORD = "NewPass123!"


def forgot(client, email: str) -> dict:
    response = client.post("/api/v1/auth/forgot-password", json={"email": email})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def verify_otp(client, email: str, otp: str):
    return client.post("/api/v1/auth/verify-otp", json={"email": email, "otp": otp})


class TestLogin:
    """Tests for POST /auth/login."""

    def test_login_success(self, client, seeded):
        response = client.post(
            "/api/v1/auth/login",
            json={"email": "admin@school.edu", "password": PASSWORD},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["accessToken"]
        assert data["refreshToken"]
        assert data["user"]["role"] == "SCHOOLADMIN"
        assert data["user"]["schoolId"] == str(seeded.school_id)
        assert "passwordHash" not in data["user"]

    def test_email_is_case_insensitive(self, client):
        data = login(client, "ADMIN@School.edu")

        assert data["user"]["email"] == "admin@school.edu"

    def test_superadmin_has_no_school(self, client):
        data = login(client, "super@school.edu")

        assert data["user"]["role"] == "SUPERADMIN"
        assert data["user"]["schoolId"] is None

    @pytest.mark.parametrize(
        "email, password",
        [
            ("admin@school.edu", "WrongPass1!"),
            ("nobody@school.edu", PASSWORD),
        ],
    )
    def test_bad_credentials_are_indistinguishable(self, client, email, password):
        response = client.post("/api/v1/auth/login", json={"email": email, "password": password})

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": {"code": "UNAUTHORIZED", "message": "Invalid email or password"},
        }

    def test_malformed_email(self, client):
        response = client.post("/api/v1/auth/login", json={"email": "nope", "password": PASSWORD})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestSession:
    """Tests for refresh rotation, logout and /me."""

    def test_refresh_rotates(self, client):
        session = login(client, "acc@school.edu")

        response = client.post("/api/v1/auth/refresh", json={"refreshToken": session["refreshToken"]})

        assert response.status_code == 200
        rotated = response.json()["data"]
        assert rotated["refreshToken"] != session["refreshToken"]
        assert rotated["user"]["email"] == "acc@school.edu"

        replay = client.post("/api/v1/auth/refresh", json={"refreshToken": session["refreshToken"]})
        assert replay.status_code == 401
        assert replay.json()["error"]["code"] == "INVALID_REFRESH_TOKEN"

    def test_access_token_cannot_refresh(self, client):
        session = login(client, "acc@school.edu")

        response = client.post("/api/v1/auth/refresh", json={"refreshToken": session["accessToken"]})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_REFRESH_TOKEN"

    def test_expired_refresh_token(self, client, clock):
        session = login(client, "acc@school.edu")
        clock.advance(days=8)

        response = client.post("/api/v1/auth/refresh", json={"refreshToken": session["refreshToken"]})

        assert response.status_code == 401

    def test_logout_revokes_and_is_idempotent(self, client):
        session = login(client, "hr@school.edu")
        body = {"refreshToken": session["refreshToken"]}

        first = client.post("/api/v1/auth/logout", json=body)
        second = client.post("/api/v1/auth/logout", json=body)

        assert first.status_code == 200
        assert first.json()["data"] == {"message": "Logged out"}
        assert second.status_code == 200
        assert client.post("/api/v1/auth/refresh", json=body).status_code == 401

    def test_logout_without_body(self, client):
        response = client.post("/api/v1/auth/logout")

        assert response.status_code == 200

    def test_me(self, client):
        session = login(client, "hr@school.edu")

        response = client.get("/api/v1/auth/me", headers=bearer(session["accessToken"]))

        assert response.status_code == 200
        user = response.json()["data"]["user"]
        assert user["role"] == "HR"
        assert user["isActive"] is True


class TestPasswordReset:
    """Tests for forgot-password, verify-otp and reset-password."""

    def test_full_flow(self, client):
        session = login(client, "admin@school.edu")
        otp = forgot(client, "admin@school.edu")["debugOtp"]
        assert len(otp) == 6 and otp.isdigit()

        verified = verify_otp(client, "admin@school.edu", otp)
        assert verified.status_code == 200
        data = verified.json()["data"]
        assert data["expiresIn"] == 600

        reset = client.post(
            "/api/v1/auth/reset-password",
            json={"resetToken": data["resetToken"], "newPassword": NEW_PASSWORD},
        )
        assert reset.status_code == 200
        assert reset.json()["data"]["message"] == "Password reset successful. Please login again."

        # every session ends with the reset
        stale = client.post("/api/v1/auth/refresh", json={"refreshToken": session["refreshToken"]})
        assert stale.status_code == 401

        assert login(client, "admin@school.edu", NEW_PASSWORD)["user"]["email"] == "admin@school.edu"
        old = client.post("/api/v1/auth/login", json={"email": "admin@school.edu", "password": PASSWORD})
        assert old.status_code == 401

    def test_otp_is_single_use(self, client):
        otp = forgot(client, "acc@school.edu")["debugOtp"]

        assert verify_otp(client, "acc@school.edu", otp).status_code == 200
        reused = verify_otp(client, "acc@school.edu", otp)

        assert reused.status_code == 400
        assert reused.json()["error"] == {"code": "INVALID_OTP", "message": "Invalid or expired OTP"}

    def test_expired_otp(self, client, clock):
        otp = forgot(client, "acc@school.edu")["debugOtp"]
        clock.advance(minutes=11)

        assert verify_otp(client, "acc@school.edu", otp).status_code == 400

    def test_new_otp_replaces_old(self, client, clock):
        first = forgot(client, "acc@school.edu")["debugOtp"]
        clock.advance(seconds=5)
        second = forgot(client, "acc@school.edu")["debugOtp"]

        if first != second:
            assert verify_otp(client, "acc@school.edu", first).status_code == 400
        assert verify_otp(client, "acc@school.edu", second).status_code == 200

    def test_reset_token_is_single_use(self, client):
        otp = forgot(client, "hr@school.edu")["debugOtp"]
        token = verify_otp(client, "hr@school.edu", otp).json()["data"]["resetToken"]
        body = {"resetToken": token, "newPassword": NEW_PASSWORD}

        assert client.post("/api/v1/auth/reset-password", json=body).status_code == 200

        reused = client.post("/api/v1/auth/reset-password", json={**body, "newPassword": "Other123!"})
        assert reused.status_code == 401
        assert reused.json()["error"]["code"] == "INVALID_RESET_TOKEN"

    def test_expired_reset_token(self, client, clock):
        otp = forgot(client, "hr@school.edu")["debugOtp"]
        token = verify_otp(client, "hr@school.edu", otp).json()["data"]["resetToken"]
        clock.advance(minutes=11)

        response = client.post(
            "/api/v1/auth/reset-password",
            json={"resetToken": token, "newPassword": NEW_PASSWORD},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_RESET_TOKEN"

    def test_unknown_email_gets_same_shape(self, client):
        known = forgot(client, "admin@school.edu")
        unknown = forgot(client, "nobody@school.edu")

        assert set(known) == set(unknown) == {"message", "otpExpiresAt", "debugOtp"}
        assert known["message"] == unknown["message"]
        assert unknown["debugOtp"] is None

    def test_unknown_email_cannot_verify(self, client):
        response = verify_otp(client, "nobody@school.edu", "123456")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_OTP"

    def test_otp_format_validated(self, client):
        response = verify_otp(client, "acc@school.edu", "12ab56")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_weak_new_password(self, client):
        response = client.post(
            "/api/v1/auth/reset-password",
            json={"resetToken": "anything", "newPassword": "short"},
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["message"] == "Password must be at least 8 characters"


class TestChangePassword:
    """Tests for POST /auth/change-password."""

    def change(self, client, token, current, new):
        return client.post(
            "/api/v1/auth/change-password",
            json={"currentPassword": current, "newPassword": new},
            headers=bearer(token),
        )

    def test_change_ends_sessions(self, client):
        session = login(client, "acc@school.edu")

        response = self.change(client, session["accessToken"], PASSWORD, NEW_PASSWORD)

        assert response.status_code == 200
        assert response.json()["data"]["message"] == "Password changed successfully. Please login again."
        stale = client.post("/api/v1/auth/refresh", json={"refreshToken": session["refreshToken"]})
        assert stale.status_code == 401
        login(client, "acc@school.edu", NEW_PASSWORD)

    def test_wrong_current_password(self, client):
        session = login(client, "acc@school.edu")

        response = self.change(client, session["accessToken"], "WrongPass1!", NEW_PASSWORD)

        assert response.status_code == 401
        assert response.json()["error"] == {
            "code": "UNAUTHORIZED",
            "message": "Current password is incorrect",
        }

    def test_same_password_rejected(self, client):
        session = login(client, "acc@school.edu")

        response = self.change(client, session["accessToken"], PASSWORD, PASSWORD)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_requires_access_token(self, client):
        response = client.post(
            "/api/v1/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": NEW_PASSWORD},
        )

        assert response.status_code == 401


class TestProductionMode:
    """Production never exposes OTPs and refuses to run without mail."""

    @pytest.fixture
    def settings(self, tmp_path):
        return make_settings(tmp_path, environment="production")

    def test_no_debug_otp(self, app, client):
        mailer = FakeMailer()
        app.state.mailer = mailer

        known = forgot(client, "admin@school.edu")
        unknown = forgot(client, "nobody@school.edu")

        assert "debugOtp" not in known
        assert set(known) == set(unknown)
        assert mailer.sent[0][0] == "admin@school.edu"

    def test_mail_not_configured(self, client):
        response = client.post("/api/v1/auth/forgot-password", json={"email": "admin@school.edu"})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "MAIL_NOT_CONFIGURED"

    def test_delivery_failure(self, app, client):
        app.state.mailer = FakeMailer(configured=True)
        app.state.mailer.send_password_reset_otp = _failing_send

        response = client.post("/api/v1/auth/forgot-password", json={"email": "admin@school.edu"})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "MAIL_DELIVERY_FAILED"


async def _failing_send(to, otp, expires_in_minutes):
    return False


class TestErrorBoundary:
    """Tests for the uniform error envelope."""

    def test_unknown_route(self, client):
        response = client.get("/api/v1/nope")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": {"code": "NOT_FOUND", "message": "Route not found"},
        }

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "connected"
