"""End-to-end tests for the user management API."""

import json

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, auth_headers, extract_code

API = "/api/core"


def _signup(client, email="jane@example.com", password="secret1", name="Jane"):
    return client.post(f"{API}/users", json={"email": email, "password": password, "name": name})


def _login(client, username, password):
    return client.post(f"{API}/login", data={"username": username, "password": password})


class TestSystemRoutes:
    """Tests for health and ping."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "healthy"

    def test_ping(self, client):
        response = client.get(f"{API}/ping")

        assert response.status_code == 204
        assert response.content == b""


class TestSignupFlow:
    """Tests for signup, verification and login."""

    def test_signup_returns_user_and_token(self, client, sent_mails):
        response = _signup(client)

        assert response.status_code == 201
        body = response.json()
        assert body["username"] == "jane@example.com"
        assert body["unverified"] is True
        assert body["good_user"] is False
        assert "password_hash" not in body
        assert auth_headers(response)["Authorization"].startswith("Bearer ")
        assert len(sent_mails) == 1

    def test_signup_validation_error(self, client):
        response = client.post(f"{API}/users", json={"email": "not-an-email", "password": "1", "name": ""})

        assert response.status_code == 422
        body = response.json()
        assert body["status"] == 422
        fields = {e["field"] for e in body["errors"]}
        assert {"email", "password", "name"} <= fields

    def test_signup_duplicate_email(self, client):
        _signup(client)

        response = _signup(client, email="JANE@example.com")

        assert response.status_code == 422
        body = response.json()
        assert body["exception_id"] == "MultiErrorException"
        assert body["errors"][0]["field"] == "email"

    def test_signup_when_logged_in_is_forbidden(self, client):
        headers = auth_headers(_signup(client))

        response = client.post(
            f"{API}/users",
            json={"email": "other@example.com", "password": "secret1", "name": "Other"},
            headers=headers,
        )

        assert response.status_code == 403

    def test_verify_and_login(self, client, sent_mails):
        user_id = _signup(client).json()["id"]
        code = extract_code(sent_mails[0])

        response = client.post(f"{API}/users/{user_id}/verification", params={"code": code})

        assert response.status_code == 200
        assert response.json()["good_user"] is True

        login = _login(client, "jane@example.com", "secret1")
        assert login.status_code == 200
        assert login.json()["id"] == user_id

    def test_verification_with_bad_code(self, client):
        user_id = _signup(client).json()["id"]

        response = client.post(f"{API}/users/{user_id}/verification", params={"code": "bad"})

        assert response.status_code == 401

    def test_resend_verification_mail(self, client, sent_mails):
        signup = _signup(client)
        user_id = signup.json()["id"]

        response = client.post(
            f"{API}/users/{user_id}/resend-verification-mail", headers=auth_headers(signup)
        )

        assert response.status_code == 204
        assert len(sent_mails) == 2

    def test_resend_verification_mail_unknown_user(self, client):
        response = client.post(f"{API}/users/999/resend-verification-mail")

        assert response.status_code == 404
        assert response.json()["message"] == "User not found"

    def test_login_bad_credentials(self, client):
        response = _login(client, ADMIN_EMAIL, "wrong")

        assert response.status_code == 401
        assert response.json()["message"] == "Bad credentials"

    def test_logout(self, client):
        login = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)

        response = client.post(f"{API}/logout", headers=auth_headers(login))

        assert response.status_code == 204

    def test_bearer_scheme_is_case_insensitive(self, client):
        signup = _signup(client)
        token = auth_headers(signup)["Authorization"].split(" ", 1)[1]

        response = client.get(f"{API}/context", headers={"Authorization": f"bearer {token}"})

        assert response.status_code == 200
        assert response.json()["user"]["username"] == "jane@example.com"

    def test_other_scheme_is_anonymous(self, client):
        response = client.get(f"{API}/context", headers={"Authorization": "Basic amFuZTpzZWNyZXQx"})

        assert response.status_code == 200
        assert response.json()["user"] is None

    def test_invalid_token_is_rejected(self, client):
        response = client.get(f"{API}/context", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401


class TestContext:
    """Tests for the context endpoint."""

    def test_anonymous_context(self, client):
        from accounts.config import settings

        response = client.get(f"{API}/context")

        assert response.status_code == 200
        body = response.json()
        assert body["user"] is None
        assert body["context"]["shared"] == settings.shared
        assert settings.auth_header not in response.headers

    def test_logged_in_context(self, client):
        login = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)

        response = client.get(
            f"{API}/context", params={"expirationMillis": 60000}, headers=auth_headers(login)
        )

        body = response.json()
        assert body["user"]["username"] == ADMIN_EMAIL
        assert body["user"]["good_admin"] is True
        assert auth_headers(response)["Authorization"].startswith("Bearer ")


class TestPasswords:
    """Tests for forgot/reset/change password."""

    def test_forgot_and_reset_password(self, client, sent_mails):
        _signup(client)

        response = client.post(f"{API}/forgot-password", data={"email": "jane@example.com"})
        assert response.status_code == 204
        code = extract_code(sent_mails[-1])

        response = client.post(f"{API}/reset-password", data={"code": code, "newPassword": "newsecret"})
        assert response.status_code == 200
        assert response.json()["username"] == "jane@example.com"

        assert _login(client, "jane@example.com", "newsecret").status_code == 200
        assert _login(client, "jane@example.com", "secret1").status_code == 401

    def test_forgot_password_unknown_email(self, client):
        response = client.post(f"{API}/forgot-password", data={"email": "nobody@example.com"})

        assert response.status_code == 404

    def test_change_password_invalidates_old_token(self, client):
        signup = _signup(client)
        user_id = signup.json()["id"]
        old_headers = auth_headers(signup)

        response = client.post(
            f"{API}/users/{user_id}/password",
            json={"old_password": "secret1", "password": "changed1", "retype_password": "changed1"},
            headers=old_headers,
        )

        assert response.status_code == 204
        new_headers = auth_headers(response)

        assert client.get(f"{API}/context", headers=old_headers).status_code == 401
        assert client.get(f"{API}/context", headers=new_headers).status_code == 200

    def test_change_password_mismatch(self, client):
        signup = _signup(client)
        user_id = signup.json()["id"]

        response = client.post(
            f"{API}/users/{user_id}/password",
            json={"old_password": "secret1", "password": "changed1", "retype_password": "changed2"},
            headers=auth_headers(signup),
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "retype_password"


class TestFetchAndUpdate:
    """Tests for fetching and patching users."""

    def test_fetch_by_id_hides_email_from_anonymous(self, client):
        user_id = _signup(client).json()["id"]

        response = client.get(f"{API}/users/{user_id}")

        assert response.status_code == 200
        assert response.json()["email"] is None
        assert response.json()["name"] == "Jane"

    def test_fetch_by_email_as_self(self, client):
        signup = _signup(client)

        response = client.post(
            f"{API}/users/fetch-by-email", data={"email": "jane@example.com"}, headers=auth_headers(signup)
        )

        assert response.status_code == 200
        assert response.json()["email"] == "jane@example.com"

    def test_fetch_unknown_user(self, client):
        response = client.get(f"{API}/users/999")

        assert response.status_code == 404

    def test_patch_user(self, client):
        signup = _signup(client)
        user_id = signup.json()["id"]
        patch = [
            {"op": "test", "path": "/version", "value": 1},
            {"op": "replace", "path": "/name", "value": "Jane Doe"},
        ]

        response = client.patch(
            f"{API}/users/{user_id}",
            content=json.dumps(patch),
            headers={**auth_headers(signup), "Content-Type": "application/json-patch+json"},
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Jane Doe"
        assert auth_headers(response)["Authorization"].startswith("Bearer ")

    def test_patch_with_stale_version(self, client):
        signup = _signup(client)
        user_id = signup.json()["id"]
        patch = [{"op": "replace", "path": "/version", "value": 41}]

        response = client.patch(
            f"{API}/users/{user_id}", content=json.dumps(patch), headers=auth_headers(signup)
        )

        assert response.status_code == 409
        assert response.json()["exception_id"] == "VersionException"

    def test_patch_malformed(self, client):
        signup = _signup(client)
        user_id = signup.json()["id"]

        response = client.patch(f"{API}/users/{user_id}", content="{nope", headers=auth_headers(signup))

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "patch"

    def test_patch_not_utf8(self, client):
        signup = _signup(client)
        user_id = signup.json()["id"]

        response = client.patch(
            f"{API}/users/{user_id}", content=b"\xff\xfe[]", headers=auth_headers(signup)
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "patch"

    def test_patch_other_user_forbidden(self, client):
        user_id = _signup(client).json()["id"]
        other = _signup(client, email="john@example.com", name="John")
        patch = [{"op": "replace", "path": "/name", "value": "Hacked"}]

        response = client.patch(
            f"{API}/users/{user_id}", content=json.dumps(patch), headers=auth_headers(other)
        )

        assert response.status_code == 403

    def test_admin_blocks_user(self, client):
        user_id = _signup(client).json()["id"]
        admin = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
        patch = [{"op": "replace", "path": "/roles", "value": ["BLOCKED"]}]

        response = client.patch(
            f"{API}/users/{user_id}", content=json.dumps(patch), headers=auth_headers(admin)
        )

        assert response.status_code == 200
        assert response.json()["username"] == ADMIN_EMAIL
        assert _login(client, "jane@example.com", "secret1").status_code == 401


class TestEmailChange:
    """Tests for changing the email."""

    def test_change_email(self, client, sent_mails):
        signup = _signup(client)
        user_id = signup.json()["id"]
        headers = auth_headers(signup)

        response = client.post(
            f"{API}/users/{user_id}/email-change-request",
            json={"new_email": "jane.new@example.com", "password": "secret1"},
            headers=headers,
        )
        assert response.status_code == 204
        code = extract_code(sent_mails[-1])

        response = client.post(f"{API}/users/{user_id}/email", params={"code": code}, headers=headers)

        assert response.status_code == 200
        assert response.json()["username"] == "jane.new@example.com"
        assert _login(client, "jane.new@example.com", "secret1").status_code == 200

    def test_change_email_requires_login(self, client):
        user_id = _signup(client).json()["id"]

        response = client.post(f"{API}/users/{user_id}/email", params={"code": "x"})

        assert response.status_code == 401


class TestFetchNewToken:
    """Tests for fetching a new auth token."""

    def test_fetch_new_token(self, client):
        signup = _signup(client)

        response = client.post(
            f"{API}/fetch-new-auth-token", data={"expirationMillis": 60000}, headers=auth_headers(signup)
        )

        assert response.status_code == 200
        token = response.json()["token"]
        assert token.startswith("Bearer ")
        assert client.get(f"{API}/context", headers={"Authorization": token}).json()["user"]["username"] == (
            "jane@example.com"
        )

    def test_admin_switches_user(self, client):
        _signup(client)
        admin = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)

        response = client.post(
            f"{API}/fetch-new-auth-token", data={"username": "jane@example.com"}, headers=auth_headers(admin)
        )

        assert response.status_code == 200

    def test_anonymous_gets_401(self, client):
        response = client.post(f"{API}/fetch-new-auth-token")

        assert response.status_code == 401
        assert response.json()["exception_id"] == "MultiErrorException"
