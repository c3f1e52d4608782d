import pytest

from conftest import PNG_BYTES, bearer
from zenyukti.core.config import settings
from zenyukti.models.user import User
from zenyukti.storage.local_storage import storage


def test_register_login_me_scenario(client, register):
    data = register("Ada", "ada@x.com", "Secret123")
    assert data["user"]["email"] == "ada@x.com"
    assert data["user"]["name"] == "Ada"
    assert "hashed_password" not in data["user"]
    assert data["token"]

    resp = client.post("/api/auth/login", json={"email": "ada@x.com", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"message": "Invalid email or password"}

    resp = client.post("/api/auth/login", json={"email": "ada@x.com", "password": "Secret123"})
    assert resp.status_code == 200
    token = resp.json()["data"]["token"]

    resp = client.get("/api/auth/me", headers=bearer(token))
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["id"] == data["user"]["id"]
    assert "token" not in resp.json()["data"]


def test_register_duplicate_email_is_case_insensitive(client, register):
    register(email="ada@x.com")

    resp = client.post(
        "/api/auth/register", json={"name": "Ada Again", "email": "ADA@X.com", "password": "Secret123"}
    )

    assert resp.status_code == 400
    assert resp.json()["message"] == "User already exists with this email"


@pytest.mark.parametrize("payload", [
    {"name": "Ada", "email": "ada@x.com", "password": "123"},
    {"name": "A", "email": "ada@x.com", "password": "Secret123"},
    {"name": "Ada", "email": "not-an-email", "password": "Secret123"},
    {"name": "Ada", "email": "ada@x.com", "password": "\u00e9" * 40},
    {"email": "ada@x.com", "password": "Secret123"},
])
def test_register_rejects_invalid_input(client, db, payload):
    resp = client.post("/api/auth/register", json=payload)

    assert resp.status_code == 400
    body = resp.json()
    assert body["message"]
    assert body["errors"]
    assert db.query(User).count() == 0


def test_login_failures_do_not_reveal_which_part_was_wrong(client, register):
    register()

    wrong_password = client.post("/api/auth/login", json={"email": "ada@x.com", "password": "nope123"})
    unknown_email = client.post("/api/auth/login", json={"email": "nobody@x.com", "password": "nope123"})

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()


def test_me_requires_valid_token(client, register):
    register()

    assert client.get("/api/auth/me").status_code == 401
    resp = client.get("/api/auth/me", headers=bearer("garbage"))
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


def test_me_for_deleted_user_is_not_found(client, db, register):
    data = register()
    db.query(User).filter(User.id == data["user"]["id"]).delete()
    db.commit()

    resp = client.get("/api/auth/me", headers=bearer(data["token"]))

    assert resp.status_code == 404
    assert resp.json() == {"message": "User not found"}


def test_update_profile(client, register):
    data = register()

    resp = client.put(
        "/api/auth/profile",
        json={"name": "Ada Lovelace", "email": "Lovelace@X.com"},
        headers=bearer(data["token"]),
    )

    assert resp.status_code == 200
    user = resp.json()["data"]["user"]
    assert user["name"] == "Ada Lovelace"
    assert user["email"] == "lovelace@x.com"


def test_update_profile_rejects_taken_email(client, register):
    register(email="ada@x.com")
    grace = register(name="Grace", email="grace@x.com")

    resp = client.put(
        "/api/auth/profile",
        json={"name": "Grace", "email": "ada@x.com"},
        headers=bearer(grace["token"]),
    )

    assert resp.status_code == 400
    assert resp.json()["message"] == "Email is already in use by another account"


def test_update_profile_requires_token(client):
    resp = client.put("/api/auth/profile", json={"name": "Ada", "email": "ada@x.com"})
    assert resp.status_code == 401


def avatar_files(user_id):
    user_dir = storage.upload_dir / "avatars" / str(user_id)
    return sorted(user_dir.iterdir()) if user_dir.exists() else []


def test_upload_avatar_stores_file_and_returns_absolute_url(client, register):
    data = register()
    user_id = data["user"]["id"]

    resp = client.post(
        "/api/auth/avatar",
        files={"avatar": ("me.png", PNG_BYTES, "image/png")},
        headers=bearer(data["token"]),
    )

    assert resp.status_code == 200
    avatar = resp.json()["data"]["user"]["avatar"]
    assert avatar.startswith(f"http://testserver/uploads/avatars/{user_id}/")
    assert avatar.endswith(".png")
    assert len(avatar_files(user_id)) == 1

    served = client.get(avatar.replace("http://testserver", ""))
    assert served.status_code == 200
    assert served.content == PNG_BYTES

    me = client.get("/api/auth/me", headers=bearer(data["token"])).json()["data"]["user"]
    assert me["avatar"] == avatar


def test_replacing_avatar_removes_previous_file(client, register):
    data = register()
    user_id = data["user"]["id"]

    for _ in range(2):
        resp = client.post(
            "/api/auth/avatar",
            files={"avatar": ("me.png", PNG_BYTES, "image/png")},
            headers=bearer(data["token"]),
        )
        assert resp.status_code == 200

    files = avatar_files(user_id)
    assert len(files) == 1
    assert resp.json()["data"]["user"]["avatar"].endswith(files[0].name)


@pytest.mark.parametrize("upload", [
    ("notes.txt", b"hello", "text/plain"),
    ("me.png", b"hello, not a png", "image/png"),
    ("me.png", PNG_BYTES, "image/jpeg"),
    ("me.png", b"", "image/png"),
])
def test_upload_avatar_rejects_bad_files_before_storing(client, register, upload):
    data = register()

    resp = client.post("/api/auth/avatar", files={"avatar": upload}, headers=bearer(data["token"]))

    assert resp.status_code == 400
    assert resp.json()["message"]
    assert avatar_files(data["user"]["id"]) == []


def test_upload_avatar_rejects_oversized_file(client, register, monkeypatch):
    data = register()
    monkeypatch.setattr(settings, "MAX_AVATAR_SIZE", 32)

    resp = client.post(
        "/api/auth/avatar",
        files={"avatar": ("me.png", PNG_BYTES, "image/png")},
        headers=bearer(data["token"]),
    )

    assert resp.status_code == 413
    assert resp.json()["message"].startswith("File too large")
    assert avatar_files(data["user"]["id"]) == []


def test_upload_avatar_without_file(client, register):
    data = register()
    resp = client.post("/api/auth/avatar", headers=bearer(data["token"]))
    assert resp.status_code == 400


def test_forgot_password_response_is_identical_for_unknown_email(client, register, sent_resets):
    register()

    known = client.post("/api/auth/forgot-password", json={"email": "ada@x.com"})
    unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@x.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert [to for to, _ in sent_resets] == ["ada@x.com"]


def test_reset_password_flow_and_ticket_reuse(client, register, sent_resets):
    register()
    client.post("/api/auth/forgot-password", json={"email": "ada@x.com"})
    (_, ticket), = sent_resets

    resp = client.post(f"/api/auth/reset-password/{ticket}", json={"password": "NewSecret1"})
    assert resp.status_code == 200
    new_token = resp.json()["data"]["token"]
    assert client.get("/api/auth/me", headers=bearer(new_token)).status_code == 200

    old_login = client.post("/api/auth/login", json={"email": "ada@x.com", "password": "Secret123"})
    new_login = client.post("/api/auth/login", json={"email": "ada@x.com", "password": "NewSecret1"})
    assert old_login.status_code == 401
    assert new_login.status_code == 200

    reused = client.post(f"/api/auth/reset-password/{ticket}", json={"password": "Another123"})
    assert reused.status_code == 400
    assert reused.json() == {"message": "Invalid or expired reset token"}


def test_reset_password_with_expired_ticket(client, register, sent_resets, monkeypatch):
    register()
    monkeypatch.setattr(settings, "RESET_TOKEN_EXPIRE_MINUTES", -1)
    client.post("/api/auth/forgot-password", json={"email": "ada@x.com"})
    (_, ticket), = sent_resets

    resp = client.post(f"/api/auth/reset-password/{ticket}", json={"password": "NewSecret1"})

    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid or expired reset token"


def test_reset_password_with_unknown_ticket(client):
    resp = client.post("/api/auth/reset-password/made-up", json={"password": "NewSecret1"})
    assert resp.status_code == 400


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
