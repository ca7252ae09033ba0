"""Liveness and root endpoints."""


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "parlomo-platform"}


async def test_root_lists_docs(client):
    body = (await client.get("/")).json()
    assert body["version"] == "1.0.0"


async def test_unknown_json_content_type_is_rejected(client):
    response = await client.post("/api/v1/auth/login", content="email=a", headers={"content-type": "text/plain"})
    assert response.status_code == 415
