"""Category administration and public listing."""

from conftest import auth_headers, create_event

BASE = "/api/v1/public-events/categories"


async def test_admin_creates_category(client, admin):
    response = await client.post(
        BASE, json={"name": "Live Music & Gigs", "icon": "Music"}, headers=auth_headers(admin)
    )
    assert response.status_code == 201, response.text
    category = response.json()
    assert category["slug"] == "live-music-gigs"
    assert category["status"] == "active"

    response = await client.post(BASE, json={"name": "live music & gigs"}, headers=auth_headers(admin))
    assert response.status_code == 409


async def test_organizer_cannot_create_category(client, organizer):
    response = await client.post(BASE, json={"name": "Comedy"}, headers=auth_headers(organizer))
    assert response.status_code == 403


async def test_seed_and_active_listing(client, admin):
    response = await client.post(f"{BASE}/seed", headers=auth_headers(admin))
    assert response.status_code == 200
    seeded = response.json()
    assert seeded["created"] > 0
    assert seeded["stats"]["needs_seed"] is False

    response = await client.post(f"{BASE}/seed", headers=auth_headers(admin))
    assert response.json()["created"] == 0

    active = (await client.get(f"{BASE}/active")).json()
    assert len(active) == seeded["created"]
    assert [item["sort_order"] for item in active] == sorted(item["sort_order"] for item in active)

    response = await client.patch(f"{BASE}/{active[0]['id']}/toggle-status", headers=auth_headers(admin))
    assert response.json()["status"] == "inactive"

    active_after = (await client.get(f"{BASE}/active")).json()
    assert len(active_after) == len(active) - 1

    listing = (await client.get(BASE, params={"status": "inactive"})).json()
    assert listing["meta"]["total"] == 1


async def test_category_in_use_cannot_be_deleted(client, admin, organizer):
    category = (await client.post(BASE, json={"name": "Theatre"}, headers=auth_headers(admin))).json()
    event = await create_event(client, organizer, category="theatre")
    assert event["category"]["slug"] == "theatre"

    response = await client.delete(f"{BASE}/{category['id']}", headers=auth_headers(admin))
    assert response.status_code == 409

    unused = (await client.post(BASE, json={"name": "Sport"}, headers=auth_headers(admin))).json()
    response = await client.delete(f"{BASE}/{unused['id']}", headers=auth_headers(admin))
    assert response.status_code == 204


async def test_reorder_categories(client, admin, organizer):
    created = {}
    for name in ("Comedy", "Film", "Sport"):
        created[name] = (await client.post(BASE, json={"name": name}, headers=auth_headers(admin))).json()

    order = [{"id": created["Sport"]["id"], "sort_order": 0},
             {"id": created["Comedy"]["id"], "sort_order": 1},
             {"id": created["Film"]["id"], "sort_order": 2}]
    response = await client.put(f"{BASE}/reorder", json={"items": order}, headers=auth_headers(admin))
    assert response.status_code == 200, response.text
    assert [item["name"] for item in response.json()] == ["Sport", "Comedy", "Film"]

    active = (await client.get(f"{BASE}/active")).json()
    assert [item["name"] for item in active] == ["Sport", "Comedy", "Film"]

    response = await client.put(f"{BASE}/reorder", json={"items": order}, headers=auth_headers(organizer))
    assert response.status_code == 403

    unknown = [{"id": "00000000-0000-0000-0000-000000000000", "sort_order": 3}]
    response = await client.put(f"{BASE}/reorder", json={"items": unknown}, headers=auth_headers(admin))
    assert response.status_code == 404
