"""Event lifecycle, visibility and organizer statistics."""

from conftest import auth_headers, buy_tickets, create_event, create_ticket_type, future

BASE = "/api/v1/public-events"


async def test_create_draft_with_nested_form(client, organizer):
    event = await create_event(
        client,
        organizer,
        publish=False,
        title="Jazz & Blues Night!",
        venue={"name": "Band on the Wall", "capacity": 400},
        location={"city": "Manchester", "coordinates": {"lat": 53.48, "lng": -2.23}},
        age_restriction="18+",
    )

    assert event["status"] == "draft"
    assert event["slug"] == "jazz-blues-night"
    assert event["venue_name"] == "The Hall"
    assert event["venue_capacity"] == 400
    assert event["city"] == "Leeds"
    assert event["latitude"] == 53.48
    assert event["age_restriction"] == 18
    assert event["currency"] == "GBP"
    assert event["organizer_email"] == organizer.email


async def test_duplicate_titles_get_numbered_slugs(client, organizer):
    first = await create_event(client, organizer, publish=False)
    second = await create_event(client, organizer, publish=False)
    assert first["slug"] == "summer-jazz-night"
    assert second["slug"] == "summer-jazz-night-1"


async def test_drafts_hidden_from_public(client, organizer, buyer):
    draft = await create_event(client, organizer, publish=False)

    assert (await client.get(f"{BASE}/{draft['id']}")).status_code == 404
    assert (await client.get(f"{BASE}/{draft['id']}", headers=auth_headers(buyer))).status_code == 404
    assert (await client.get(f"{BASE}/{draft['id']}", headers=auth_headers(organizer))).status_code == 200

    listing = (await client.get(BASE)).json()
    assert listing["pagination"]["total"] == 0

    own = await client.get(BASE, params={"organizer_id": str(organizer.id)}, headers=auth_headers(organizer))
    assert [event["id"] for event in own.json()["events"]] == [draft["id"]]


async def test_publish_lifecycle(client, organizer):
    event = await create_event(client, organizer)
    assert event["status"] == "published"
    assert event["published_at"] is not None

    response = await client.post(f"{BASE}/{event['id']}/publish", headers=auth_headers(organizer))
    assert response.status_code == 400

    by_slug = await client.get(f"{BASE}/slug/{event['slug'].upper()}")
    assert by_slug.status_code == 200
    assert by_slug.json()["id"] == event["id"]

    response = await client.post(f"{BASE}/{event['id']}/unpublish", headers=auth_headers(organizer))
    assert response.json()["status"] == "draft"


async def test_list_filters(client, organizer):
    await create_event(client, organizer, title="Leeds Folk Festival", city="Leeds", tags=["folk"])
    await create_event(client, organizer, title="York Comedy Club", city="York", start_date=future(60))

    response = await client.get(BASE, params={"city": "york"})
    assert [event["title"] for event in response.json()["events"]] == ["York Comedy Club"]

    response = await client.get(BASE, params={"search": "folk"})
    assert response.json()["pagination"]["total"] == 1

    response = await client.get(BASE, params={"sort_by": "start_date", "sort_order": "asc"})
    titles = [event["title"] for event in response.json()["events"]]
    assert titles == ["Leeds Folk Festival", "York Comedy Club"]


async def test_only_owner_may_update(client, organizer, other_organizer, admin):
    event = await create_event(client, organizer)

    response = await client.put(
        f"{BASE}/{event['id']}", json={"title": "Hijacked"}, headers=auth_headers(other_organizer)
    )
    assert response.status_code == 403

    response = await client.put(
        f"{BASE}/{event['id']}", json={"title": "Autumn Jazz Night"}, headers=auth_headers(organizer)
    )
    assert response.status_code == 200
    assert response.json()["slug"] == "autumn-jazz-night"

    response = await client.put(f"{BASE}/{event['id']}", json={"featured": True}, headers=auth_headers(admin))
    assert response.json()["featured"] is True


async def test_update_rejects_end_before_start(client, organizer):
    event = await create_event(client, organizer, start_date=future(30))
    response = await client.put(
        f"{BASE}/{event['id']}", json={"end_date": future(10)}, headers=auth_headers(organizer)
    )
    assert response.status_code == 400


async def test_cancel_stops_sales_and_notifies(client, organizer, buyer, queued):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    await buy_tickets(client, buyer, event["id"], ticket_type["id"])

    response = await client.post(
        f"{BASE}/{event['id']}/cancel", json={"reason": "Venue flooded"}, headers=auth_headers(organizer)
    )
    assert response.status_code == 200
    cancelled = response.json()
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancellation_reason"] == "Venue flooded"
    assert ("send_event_cancellation_task", (event["id"],)) in queued

    view = (await client.get(f"/api/v1/ticketing/events/{event['id']}", headers=auth_headers(organizer))).json()
    assert all(not item["active"] for item in view["ticket_types"])

    response = await client.post(f"{BASE}/{event['id']}/cancel", headers=auth_headers(organizer))
    assert response.status_code == 400

    response = await client.put(f"{BASE}/{event['id']}", json={"title": "Back on"}, headers=auth_headers(organizer))
    assert response.status_code == 409


async def test_cancelling_a_draft_sends_nothing(client, organizer, queued):
    draft = await create_event(client, organizer, publish=False)
    response = await client.delete(f"{BASE}/{draft['id']}", headers=auth_headers(organizer))
    assert response.json()["status"] == "cancelled"
    assert not [name for name, _ in queued if name == "send_event_cancellation_task"]


async def test_event_stats(client, organizer, buyer):
    event = await create_event(client, organizer)
    general = await create_ticket_type(client, organizer, event["id"], capacity=50)
    vip = await create_ticket_type(client, organizer, event["id"], name="VIP", price=6000, capacity=10)
    await buy_tickets(client, buyer, event["id"], general["id"], quantity=3)
    await buy_tickets(client, buyer, event["id"], vip["id"], quantity=1)

    response = await client.get(f"{BASE}/{event['id']}/stats", headers=auth_headers(organizer))
    assert response.status_code == 200
    stats = response.json()
    assert stats["tickets_sold"] == 4
    assert stats["total_orders"] == 2
    assert stats["total_attendees"] == 4
    assert stats["checked_in_count"] == 0
    assert stats["remaining_capacity"] == 56
    assert stats["ticket_type_breakdown"] == {"General Admission": 3, "VIP": 1}
    assert stats["revenue_by_ticket_type"] == {"General Admission": 7500, "VIP": 6000}

    response = await client.get(f"{BASE}/{event['id']}/stats", headers=auth_headers(buyer))
    assert response.status_code == 403


async def test_overview_is_admin_only(client, organizer, admin):
    await create_event(client, organizer)
    await create_event(client, organizer, publish=False)

    assert (await client.get(f"{BASE}/overview", headers=auth_headers(organizer))).status_code == 403

    overview = (await client.get(f"{BASE}/overview", headers=auth_headers(admin))).json()
    assert overview["total"] == 2
    assert overview["draft"] == 1
    assert overview["published"] == 1
    assert overview["by_category"] == {"uncategorized": 2}
