import mailer
from conftest import auth_header, make_user


def test_register_login_and_me(client):
    registered = client.post("/api/user/register", json={
        "name": "Meera",
        "email": "Meera@Example.com",
        "password": "hunter22",
    })
    assert registered.status_code == 201
    assert registered.json()["user"]["role"] == "User"

    login = client.post("/api/login", json={"email": "meera@example.com", "password": "hunter22"})
    assert login.status_code == 200
    token = login.json()["token"]

    me = client.get("/api/me", headers={"Authorization": f"Bearer {token}"}).json()["user"]
    assert me["email"] == "meera@example.com"
    assert "password" not in me


def test_register_rejects_duplicate_email(client):
    body = {"name": "Meera", "email": "meera@example.com", "password": "hunter22"}
    client.post("/api/user/register", json=body)
    duplicate = client.post("/api/user/register", json={**body, "email": "MEERA@example.com"})
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "Email already exists"


def test_login_failures(client, mongo):
    make_user(mongo, "meera@example.com")
    make_user(mongo, "old@example.com", is_active=False)

    wrong = client.post("/api/login", json={"email": "meera@example.com", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.headers["www-authenticate"] == "Bearer"
    assert client.post("/api/login", json={"email": "who@example.com", "password": "nope"}).status_code == 401

    deactivated = client.post("/api/login", json={"email": "old@example.com", "password": "secret123"})
    assert deactivated.status_code == 401
    assert deactivated.json()["error"] == "Account is deactivated"


def test_deactivated_user_token_is_rejected(client, mongo):
    user = make_user(mongo, "meera@example.com")
    headers = auth_header(user)
    assert client.get("/api/me", headers=headers).status_code == 200

    mongo["user"].update_one({"_id": user["_id"]}, {"$set": {"is_active": False}})
    assert client.get("/api/me", headers=headers).status_code == 401


def test_admin_creates_admin_and_welcome_mail_is_sent(client, admin_headers, sent):
    response = client.post("/api/admin/users", json={"name": "Omar", "email": "omar@example.com"}, headers=admin_headers)

    assert response.status_code == 201
    assert response.json()["user"]["role"] == "Admin"
    assert len(sent) == 1
    assert sent[0].kind is mailer.NotificationKind.NEW_ADMIN_WELCOME
    assert sent[0].recipients == ["omar@example.com"]
    assert "Password:" in sent[0].body


def test_admin_updates_user_and_profile_mail_is_sent(client, mongo, admin_headers, sent):
    user = make_user(mongo, "meera@example.com")

    response = client.put(
        f"/api/admin/users/{user['_id']}", json={"phone": "12345", "password": "newpass1"}, headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["user"]["phone"] == "12345"
    assert sent[0].kind is mailer.NotificationKind.PROFILE_UPDATED
    assert "newpass1" not in sent[0].body
    login = client.post("/api/login", json={"email": "meera@example.com", "password": "newpass1"})
    assert login.status_code == 200


def test_admin_cannot_remove_themselves(client, admin, admin_headers, mongo):
    own = f"/api/admin/users/{admin['_id']}"
    assert client.delete(own, headers=admin_headers).status_code == 400
    assert client.put(own, json={"is_active": False}, headers=admin_headers).status_code == 400

    other = make_user(mongo, "meera@example.com")
    assert client.delete(f"/api/admin/users/{other['_id']}", headers=admin_headers).status_code == 200
    assert [u["email"] for u in client.get("/api/admin/users", headers=admin_headers).json()["users"]] == ["admin@example.com"]


def test_profile_update(client, mongo, sent):
    user = make_user(mongo, "meera@example.com")
    response = client.put("/api/me", json={"name": "Meera K"}, headers=auth_header(user))
    assert response.json()["user"]["name"] == "Meera K"
    assert sent[0].recipients == ["meera@example.com"]
    assert client.put("/api/me", json={}, headers=auth_header(user)).status_code == 400
