"""User API tests — end to end over HTTP.

Covers:
1. Registration (multipart, avatar required, duplicates, blank fields)
2. Login → sanitized user + tokens + httpOnly/secure cookies
3. Token refresh via body and via cookie, replay rejection
4. Logout, password change, current user
5. Account details, avatar and cover image updates
"""

import os
from pathlib import Path

import pytest

PASSWORD = "Secret123"


def _avatar(name="avatar.png"):
    return (name, b"\x89PNG-avatar-bytes", "image/png")


async def register(client, username="alice", email="a@x.com", password=PASSWORD, cover=False):
    files = {"avatar": _avatar()}
    if cover:
        files["coverImage"] = ("cover.jpg", b"cover-bytes", "image/jpeg")
    return await client.post(
        "/api/v1/users/register",
        data={
            "username": username,
            "email": email,
            "fullName": "Alice",
            "password": password,
        },
        files=files,
    )


async def login(client, username="alice", password=PASSWORD):
    r = await client.post(
        "/api/v1/users/login",
        json={"username": username, "password": password},
    )
    return r


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _set_cookie_headers(response, name):
    return [h for h in response.headers.get_list("set-cookie") if h.startswith(f"{name}=")]


# ═══════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_user(client, media):
    r = await register(client, username="Alice", cover=True)
    assert r.status_code == 201
    body = r.json()
    assert body["statusCode"] == 201
    assert body["success"] is True
    user = body["data"]
    assert user["username"] == "alice"
    assert user["email"] == "a@x.com"
    assert user["fullName"] == "Alice"
    assert user["avatar"] == media.uploaded[0].url
    assert user["coverImage"] == media.uploaded[1].url
    assert "passwordHash" not in user
    assert "refreshToken" not in user


@pytest.mark.asyncio
async def test_register_cover_is_optional(client):
    r = await register(client)
    assert r.status_code == 201
    assert r.json()["data"]["coverImage"] == ""


@pytest.mark.asyncio
async def test_register_without_avatar(client, media):
    r = await client.post(
        "/api/v1/users/register",
        data={"username": "alice", "email": "a@x.com", "fullName": "Alice", "password": PASSWORD},
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Avatar file is required"
    assert r.json()["success"] is False
    assert media.uploaded == []


@pytest.mark.asyncio
async def test_register_avatar_upload_failure(client, media):
    media.fail_uploads = True
    r = await register(client)
    assert r.status_code == 400
    assert r.json()["message"] == "Avatar file is required"


@pytest.mark.asyncio
async def test_register_blank_field(client, media):
    r = await client.post(
        "/api/v1/users/register",
        data={"username": "   ", "email": "a@x.com", "fullName": "Alice", "password": PASSWORD},
        files={"avatar": _avatar()},
    )
    assert r.status_code == 400
    assert r.json()["message"] == "All fields are required"
    assert media.uploaded == []


@pytest.mark.asyncio
async def test_register_duplicate(client, media):
    assert (await register(client)).status_code == 201
    r = await register(client, username="other")
    assert r.status_code == 409
    assert r.json()["success"] is False
    # Duplicate is detected before the media host is touched
    assert len(media.uploaded) == 1


@pytest.mark.asyncio
async def test_register_rejected_cover_leaves_no_temp_files(client, media, settings):
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    before = set(os.listdir(upload_dir))

    r = await client.post(
        "/api/v1/users/register",
        data={"username": "alice", "email": "a@x.com", "fullName": "Alice", "password": PASSWORD},
        files={
            "avatar": ("avatar.png", b"PNG", "image/png"),
            "coverImage": ("cover.png", b"x" * (settings.max_upload_bytes + 10), "image/png"),
        },
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Uploaded file is too large"
    assert set(os.listdir(upload_dir)) == before
    assert media.uploaded == []


@pytest.mark.asyncio
async def test_register_username_too_long(client, media):
    r = await register(client, username="a" * 51)
    assert r.status_code == 400
    assert r.json()["message"] == "Username must be at most 50 characters"
    assert media.uploaded == []


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_scenario(client):
    await register(client)
    r = await login(client)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["accessToken"]
    assert data["refreshToken"]
    assert data["user"]["username"] == "alice"
    assert "passwordHash" not in data["user"]
    assert "refreshToken" not in data["user"]


@pytest.mark.asyncio
async def test_login_sets_secure_cookies(client):
    await register(client)
    r = await login(client)
    data = r.json()["data"]
    for name, value in (("accessToken", data["accessToken"]), ("refreshToken", data["refreshToken"])):
        [header] = _set_cookie_headers(r, name)
        assert header.startswith(f"{name}={value};")
        assert "HttpOnly" in header
        assert "Secure" in header
    assert r.headers["Cache-Control"] == "no-store"


@pytest.mark.asyncio
async def test_login_by_email(client):
    await register(client)
    r = await client.post(
        "/api/v1/users/login",
        json={"email": "a@x.com", "password": PASSWORD},
    )
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_login_missing_identifier(client):
    r = await client.post("/api/v1/users/login", json={"password": PASSWORD})
    assert r.status_code == 400
    assert r.json()["message"] == "Username or email is required"


@pytest.mark.asyncio
async def test_login_without_password_uses_envelope(client):
    r = await client.post("/api/v1/users/login", json={"username": "alice"})
    assert r.status_code == 400
    body = r.json()
    assert body["statusCode"] == 400
    assert body["success"] is False
    assert body["data"] is None
    assert "password" in body["message"]
    assert "detail" not in body


@pytest.mark.asyncio
async def test_login_failures_look_alike(client):
    await register(client)
    wrong_password = await login(client, password="wrong")
    unknown_user = await login(client, username="ghost")

    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json()["message"] == unknown_user.json()["message"]
    assert wrong_password.headers["WWW-Authenticate"] == "Bearer"


# ═══════════════════════════════════════════════════════════
# Refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_refresh_with_body(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.post(
        "/api/v1/users/refresh-token",
        json={"refreshToken": tokens["refreshToken"]},
    )
    assert r.status_code == 200
    fresh = r.json()["data"]
    assert fresh["accessToken"] != tokens["accessToken"]
    assert fresh["refreshToken"] != tokens["refreshToken"]
    assert _set_cookie_headers(r, "accessToken")
    assert _set_cookie_headers(r, "refreshToken")


@pytest.mark.asyncio
async def test_refresh_with_cookie(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    client.cookies.set("refreshToken", tokens["refreshToken"])
    r = await client.post("/api/v1/users/refresh-token")
    assert r.status_code == 200
    assert r.json()["data"]["refreshToken"] != tokens["refreshToken"]


@pytest.mark.asyncio
async def test_refresh_replay_rejected(client):
    await register(client)
    tokens = (await login(client)).json()["data"]
    body = {"refreshToken": tokens["refreshToken"]}

    assert (await client.post("/api/v1/users/refresh-token", json=body)).status_code == 200
    r = await client.post("/api/v1/users/refresh-token", json=body)
    assert r.status_code == 401
    assert r.json()["message"] == "Unauthorized access"


@pytest.mark.asyncio
async def test_refresh_without_token(client):
    r = await client.post("/api/v1/users/refresh-token")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_body_token_wins_over_stale_cookie(client):
    await register(client)
    stale = (await login(client)).json()["data"]["refreshToken"]
    current = (await login(client)).json()["data"]["refreshToken"]

    client.cookies.set("refreshToken", stale)
    r = await client.post("/api/v1/users/refresh-token", json={"refreshToken": current})
    assert r.status_code == 200


# ═══════════════════════════════════════════════════════════
# Authenticated routes
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_current_user_with_bearer(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.post("/api/v1/users/current-user", headers=bearer(tokens["accessToken"]))
    assert r.status_code == 200
    assert r.json()["data"]["username"] == "alice"
    assert "refreshToken" not in r.json()["data"]


@pytest.mark.asyncio
async def test_current_user_with_cookie(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    client.cookies.set("accessToken", tokens["accessToken"])
    r = await client.post("/api/v1/users/current-user")
    assert r.status_code == 200
    assert r.json()["data"]["email"] == "a@x.com"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer invalid_token_here"}, {"Authorization": "Basic abc"}],
)
async def test_current_user_unauthenticated(client, headers):
    r = await client.post("/api/v1/users/current-user", headers=headers)
    assert r.status_code == 401
    assert r.json()["success"] is False


@pytest.mark.asyncio
async def test_refresh_token_is_not_accepted_as_access(client):
    await register(client)
    tokens = (await login(client)).json()["data"]
    r = await client.post("/api/v1/users/current-user", headers=bearer(tokens["refreshToken"]))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_logout_clears_session_and_cookies(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.post("/api/v1/users/logout", headers=bearer(tokens["accessToken"]))
    assert r.status_code == 200
    for name in ("accessToken", "refreshToken"):
        [header] = _set_cookie_headers(r, name)
        assert "Max-Age=0" in header or "expires=" in header.lower()

    r = await client.post(
        "/api/v1/users/refresh-token",
        json={"refreshToken": tokens["refreshToken"]},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_logout_requires_auth(client):
    r = await client.post("/api/v1/users/logout")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_change_password_flow(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.post(
        "/api/v1/users/change-current-password",
        json={"oldPassword": PASSWORD, "newPassword": "NewPass1", "confirmPassword": "NewPass1"},
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 200
    assert r.json()["success"] is True

    assert (await login(client, password="NewPass1")).status_code == 200
    assert (await login(client, password=PASSWORD)).status_code == 401


@pytest.mark.asyncio
async def test_change_password_mismatch(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.post(
        "/api/v1/users/change-current-password",
        json={"oldPassword": PASSWORD, "newPassword": "NewPass1", "confirmPassword": "NewPass2"},
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "New and confirm password do not match"
    assert (await login(client)).status_code == 200


@pytest.mark.asyncio
async def test_change_password_wrong_old(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.post(
        "/api/v1/users/change-current-password",
        json={"oldPassword": "wrong", "newPassword": "NewPass1", "confirmPassword": "NewPass1"},
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_change_password_unencodable_is_rejected(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.post(
        "/api/v1/users/change-current-password",
        content=b'{"oldPassword": "Secret123", "newPassword": "\\ud800", "confirmPassword": "\\ud800"}',
        headers={**bearer(tokens["accessToken"]), "Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert (await login(client)).status_code == 200


# ═══════════════════════════════════════════════════════════
# Profile updates
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_update_account_details(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.patch(
        "/api/v1/users/update-account-details",
        json={"fullName": "Alice Liddell", "email": "Alice@Wonder.land"},
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 200
    user = r.json()["data"]
    assert user["fullName"] == "Alice Liddell"
    assert user["email"] == "alice@wonder.land"


@pytest.mark.asyncio
async def test_update_account_details_requires_both(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.patch(
        "/api/v1/users/update-account-details",
        json={"fullName": "Alice"},
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_update_account_details_email_taken(client):
    await register(client)
    await register(client, username="bob", email="b@x.com")
    tokens = (await login(client, username="bob")).json()["data"]

    r = await client.patch(
        "/api/v1/users/update-account-details",
        json={"fullName": "Bob", "email": "a@x.com"},
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_update_account_details_email_too_long(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.patch(
        "/api/v1/users/update-account-details",
        json={"fullName": "Alice", "email": "a" * 250 + "@x.com"},
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Email must be at most 255 characters"


@pytest.mark.asyncio
async def test_update_avatar_replaces_old_asset(client, media):
    await register(client)
    tokens = (await login(client)).json()["data"]
    old = media.uploaded[0]

    r = await client.patch(
        "/api/v1/users/update-user-avatar",
        files={"avatar": _avatar("new.png")},
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 200
    new = media.uploaded[-1]
    assert r.json()["data"]["avatar"] == new.url
    assert media.deleted == [old.public_id]


@pytest.mark.asyncio
async def test_update_avatar_missing_file(client):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.patch(
        "/api/v1/users/update-user-avatar",
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_update_avatar_upload_failure_keeps_old(client, media):
    await register(client)
    tokens = (await login(client)).json()["data"]
    old_url = media.uploaded[0].url
    media.fail_uploads = True

    r = await client.patch(
        "/api/v1/users/update-user-avatar",
        files={"avatar": _avatar("new.png")},
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 400
    assert media.deleted == []

    r = await client.post("/api/v1/users/current-user", headers=bearer(tokens["accessToken"]))
    assert r.json()["data"]["avatar"] == old_url


@pytest.mark.asyncio
async def test_update_cover_image(client, media):
    await register(client)
    tokens = (await login(client)).json()["data"]

    r = await client.patch(
        "/api/v1/users/update-user-cover-image",
        files={"coverImage": ("cover.jpg", b"cover-bytes", "image/jpeg")},
        headers=bearer(tokens["accessToken"]),
    )
    assert r.status_code == 200
    assert r.json()["data"]["coverImage"] == media.uploaded[-1].url
    # No previous cover, nothing to delete
    assert media.deleted == []


# ═══════════════════════════════════════════════════════════
# Error translation
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_store_failure_is_a_generic_500(client, db_session, monkeypatch):
    from sqlalchemy.exc import OperationalError

    await register(client)

    async def failing_execute(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db_session, "execute", failing_execute)
    r = await login(client)
    assert r.status_code == 500
    assert r.json() == {
        "statusCode": 500,
        "success": False,
        "message": "Something went wrong",
        "data": None,
    }
