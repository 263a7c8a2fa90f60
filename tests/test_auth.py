from datetime import timedelta

PASSWORD = "s3cret-pass"


def test_register_returns_session(client):
    response = client.post("/api/auth/register", json={
        "name": "Ravi Kumar", "email": "Ravi@OrderKaro.in", "password": PASSWORD,
    })
    assert response.status_code == 201
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "ravi@orderkaro.in"
    assert data["user"]["is_admin"] is False
    assert "password_hash" not in data["user"]


def test_register_duplicate_email(client, user):
    response = client.post("/api/auth/register", json={
        "name": "Someone", "email": "asha@orderkaro.in", "password": PASSWORD,
    })
    assert response.status_code == 409
    assert response.json() == {"message": "User already exists"}


def test_register_short_password(client):
    response = client.post("/api/auth/register", json={
        "name": "Ravi", "email": "ravi@orderkaro.in", "password": "abc",
    })
    assert response.status_code == 400
    assert "at least 6" in response.json()["message"]


def test_register_blocked_domain(client):
    response = client.post("/api/auth/register", json={
        "name": "Ravi", "email": "ravi@test.com", "password": PASSWORD,
    })
    assert response.status_code == 400


def test_login(client, user):
    response = client.post("/api/auth/login", json={"email": "asha@orderkaro.in", "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["user"]["id"] == user["user"]["id"]


def test_login_wrong_password(client, user):
    response = client.post("/api/auth/login", json={"email": "asha@orderkaro.in", "password": "wrong-pass"})
    assert response.status_code == 401
    assert response.json() == {"message": "Invalid credentials"}


def test_private_route_without_token(client):
    response = client.get("/api/profile")
    assert response.status_code == 401
    assert response.json() == {"message": "Not authorized, no token"}


def test_private_route_with_malformed_header(client):
    response = client.get("/api/profile", headers={"Authorization": "Token abc"})
    assert response.status_code == 401
    assert response.json() == {"message": "Invalid authentication header format"}


def test_expired_token_is_rejected(client, services, user):
    token = services.auth.create_access_token(user["user"]["id"], expires_delta=timedelta(seconds=-1))
    response = client.get("/api/profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json() == {"message": "Not authorized, token failed"}


def test_logout_revokes_token(client, headers):
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/profile", headers=headers).status_code == 401


def test_auth_status(client, headers):
    anonymous = client.get("/api/auth-status").json()
    assert anonymous["is_authenticated"] is False

    signed_in = client.get("/api/auth-status", headers=headers).json()
    assert signed_in["is_authenticated"] is True
    assert signed_in["user"]["email"] == "asha@orderkaro.in"


def test_forgot_password_does_not_reveal_accounts(client, user):
    known = client.post("/api/auth/forgot-password", json={"email": "asha@orderkaro.in"})
    unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@orderkaro.in"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()


def test_recovery_code_works_once(client, services, user):
    code = services.auth.reset_password_for_email("asha@orderkaro.in")
    assert len(code) == 6

    first = client.post("/api/auth/verify-otp", json={"email": "asha@orderkaro.in", "code": code})
    assert first.status_code == 200
    assert first.json()["user"]["id"] == user["user"]["id"]

    second = client.post("/api/auth/verify-otp", json={"email": "asha@orderkaro.in", "code": code})
    assert second.status_code == 401


def test_update_password(client, headers):
    mismatch = client.put("/api/auth/password", headers=headers, json={
        "password": "new-pass-1", "confirm_password": "new-pass-2",
    })
    assert mismatch.status_code == 400
    assert mismatch.json() == {"message": "Passwords do not match"}

    response = client.put("/api/auth/password", headers=headers, json={
        "password": "new-pass-1", "confirm_password": "new-pass-1",
    })
    assert response.status_code == 200

    login = client.post("/api/auth/login", json={"email": "asha@orderkaro.in", "password": "new-pass-1"})
    assert login.status_code == 200


def test_login_runs_account_setup(client, services, user):
    client.post("/api/auth/login", json={"email": "asha@orderkaro.in", "password": PASSWORD})
    assert services.account_setup.state(user["user"]["id"])["initialized"] is True


def test_logout_forgets_account_setup(client, services, user, headers):
    user_id = user["user"]["id"]
    assert services.account_setup.state(user_id)["initialized"] is True

    client.post("/api/auth/logout", headers=headers)
    assert services.account_setup.state(user_id)["attempts"] == 0
    assert services.account_setup.state(user_id)["initialized"] is False
    assert user_id not in services.account_setup._last_run
