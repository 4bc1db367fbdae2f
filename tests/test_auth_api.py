import pytest

from conftest import bearer, error_fields, register, register_payload


class TestRegister:
    def test_register_returns_user_and_tokens(self, client):
        res = client.post("/auth/register", json=register_payload(email="Alice@Example.com"))
        assert res.status_code == 201
        body = res.json()
        assert body["success"] is True
        assert body["message"] == "User registered successfully"

        data = body["data"]
        assert data["user"]["username"] == "alice"
        assert data["user"]["email"] == "alice@example.com"
        assert set(data["user"]) == {"id", "username", "email"}
        assert data["accessToken"]
        assert data["refreshToken"]
        assert "password" not in res.text
        assert "passwordHash" not in res.text

    def test_register_validation_errors(self, client):
        res = client.post("/auth/register", json={"username": "ab", "email": "bad", "password": "123"})
        assert res.status_code == 400
        body = res.json()
        assert body["success"] is False
        assert body["message"] == "Validation errors"
        assert set(error_fields(body)) == {"username", "email", "password"}
        assert error_fields(body, "password") == ["Password must be at least 6 characters long"]

    def test_username_characters(self, client):
        res = client.post("/auth/register", json=register_payload(username="bad name!"))
        assert res.status_code == 400
        assert error_fields(res.json(), "username") == [
            "Username can only contain letters, numbers, and underscores"
        ]

    def test_duplicate_email(self, client):
        register(client)
        res = client.post("/auth/register", json=register_payload(username="alice2", email="ALICE@example.com"))
        assert res.status_code == 400
        assert res.json() == {"success": False, "message": "Email already registered"}

    def test_duplicate_username(self, client):
        register(client)
        res = client.post("/auth/register", json=register_payload(email="other@example.com"))
        assert res.status_code == 400
        assert res.json()["message"] == "Username already taken"

    def test_email_reported_when_both_collide(self, client):
        register(client)
        res = client.post("/auth/register", json=register_payload())
        assert res.json()["message"] == "Email already registered"

    def test_invalid_json_body(self, client):
        res = client.post(
            "/auth/register", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert res.status_code == 400
        assert error_fields(res.json()) == ["body"]


class TestLogin:
    def test_login_success(self, client, session):
        res = client.post("/auth/login", json={"email": "ALICE@example.com", "password": "secret123"})
        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "Login successful"
        assert body["data"]["user"]["id"] == session["user"]["id"]
        assert body["data"]["accessToken"]

    def test_wrong_password_and_unknown_email_look_the_same(self, client, session):
        wrong = client.post("/auth/login", json={"email": "alice@example.com", "password": "nope123"})
        unknown = client.post("/auth/login", json={"email": "bob@example.com", "password": "secret123"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"success": False, "message": "Invalid email or password"}

    def test_login_validation(self, client):
        res = client.post("/auth/login", json={"email": "alice@example.com", "password": ""})
        assert res.status_code == 400
        assert error_fields(res.json(), "password") == ["Password is required"]

    @pytest.mark.parametrize("password", [123456, True, {"a": 1}, ["x"], None])
    def test_login_password_must_be_a_string(self, client, session, password):
        res = client.post("/auth/login", json={"email": "alice@example.com", "password": password})
        assert res.status_code == 400
        body = res.json()
        assert body["message"] == "Validation errors"
        assert error_fields(body, "password") == ["Password is required"]

    def test_login_invalidates_earlier_refresh_token(self, client, session):
        client.post("/auth/login", json={"email": "alice@example.com", "password": "secret123"})
        res = client.post("/auth/refresh", json={"refreshToken": session["refreshToken"]})
        assert res.status_code == 401


class TestRefresh:
    def test_rotation(self, client, session):
        res = client.post("/auth/refresh", json={"refreshToken": session["refreshToken"]})
        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "Token refreshed successfully"
        assert set(body["data"]) == {"accessToken", "refreshToken"}
        assert body["data"]["refreshToken"] != session["refreshToken"]

        me = client.get("/auth/me", headers=bearer(body["data"]["accessToken"]))
        assert me.status_code == 200

    def test_reused_token_is_rejected(self, client, session):
        client.post("/auth/refresh", json={"refreshToken": session["refreshToken"]})
        res = client.post("/auth/refresh", json={"refreshToken": session["refreshToken"]})
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid refresh token"

    def test_missing_refresh_token(self, client):
        res = client.post("/auth/refresh", json={})
        assert res.status_code == 400
        assert res.json()["message"] == "Refresh token is required"

    def test_access_token_is_not_a_refresh_token(self, client, session):
        res = client.post("/auth/refresh", json={"refreshToken": session["accessToken"]})
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid refresh token"


class TestLogoutAndMe:
    def test_me(self, client, session, auth_headers):
        res = client.get("/auth/me", headers=auth_headers)
        assert res.status_code == 200
        assert res.json()["data"]["user"] == session["user"]

    def test_me_requires_token(self, client):
        res = client.get("/auth/me")
        assert res.status_code == 401
        assert res.json() == {"success": False, "message": "Access denied. No token provided."}
        assert res.headers["WWW-Authenticate"] == "Bearer"

    def test_me_with_bad_token(self, client):
        res = client.get("/auth/me", headers=bearer("garbage"))
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid token."

    def test_non_bearer_scheme(self, client, session):
        res = client.get("/auth/me", headers={"Authorization": f"Token {session['accessToken']}"})
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid token."

    def test_logout_ends_refresh(self, client, session, auth_headers):
        res = client.post("/auth/logout", headers=auth_headers)
        assert res.status_code == 200
        assert res.json() == {"success": True, "message": "Logout successful"}

        res = client.post("/auth/refresh", json={"refreshToken": session["refreshToken"]})
        assert res.status_code == 401

    def test_logout_requires_token(self, client):
        assert client.post("/auth/logout").status_code == 401
