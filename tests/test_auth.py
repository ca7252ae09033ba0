"""Registration, login, profile and admin user management."""

from conftest import auth_headers


async def test_register_and_login(client):
    response = await client.post("/api/v1/auth/register", json={
        "email": "Grace@Example.com",
        "password": "s3cure-pass",
        "first_name": "Grace",
        "last_name": "Hopper",
        "account_type": "organizer",
    })
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "grace@example.com"
    assert body["user"]["role"] == "organizer"

    response = await client.post("/api/v1/auth/login", json={"email": "grace@example.com", "password": "s3cure-pass"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["first_name"] == "Grace"


async def test_register_duplicate_email(client, buyer):
    response = await client.post("/api/v1/auth/register", json={
        "email": buyer.email,
        "password": "another-pass",
        "first_name": "Copy",
        "last_name": "Cat",
    })
    assert response.status_code == 409


async def test_login_wrong_password(client, buyer):
    response = await client.post("/api/v1/auth/login", json={"email": buyer.email, "password": "wrong-password"})
    assert response.status_code == 401


async def test_me_requires_token(client):
    response = await client.get("/api/v1/auth/me")
    assert response.status_code in (401, 403)


async def test_update_profile_and_change_password(client, buyer):
    headers = auth_headers(buyer)
    response = await client.put("/api/v1/auth/me", json={"phone": "+44 113 496 0000"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["phone"] == "+44 113 496 0000"

    response = await client.post(
        "/api/v1/auth/change-password",
        json={"current_password": "nope-nope", "new_password": "brand-new-pass"},
        headers=headers,
    )
    assert response.status_code == 400

    response = await client.post(
        "/api/v1/auth/change-password",
        json={"current_password": "password123", "new_password": "brand-new-pass"},
        headers=headers,
    )
    assert response.status_code == 200

    response = await client.post("/api/v1/auth/login", json={"email": buyer.email, "password": "brand-new-pass"})
    assert response.status_code == 200


async def test_admin_promotes_user(client, admin, buyer):
    response = await client.put(
        f"/api/v1/users/{buyer.id}/role", json={"role": "organizer"}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["role"] == "organizer"

    response = await client.get(f"/api/v1/users/{buyer.id}", headers=auth_headers(admin))
    assert response.json()["role"] == "organizer"


async def test_role_change_is_admin_only(client, organizer, buyer):
    response = await client.put(
        f"/api/v1/users/{buyer.id}/role", json={"role": "admin"}, headers=auth_headers(organizer)
    )
    assert response.status_code == 403
