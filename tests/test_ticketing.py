"""Ticket types, promo codes and the public ticketing view."""

from conftest import auth_headers, buy_tickets, create_event, create_ticket_type, future

BASE = "/api/v1/ticketing"


async def test_ticket_type_crud(client, organizer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"], currency="eur")

    assert ticket_type["currency"] == "EUR"
    assert ticket_type["available"] == 100
    assert ticket_type["is_on_sale"] is True

    url = f"{BASE}/events/{event['id']}/ticket-types/{ticket_type['id']}"
    response = await client.put(url, json={"price": 3000, "capacity": 80}, headers=auth_headers(organizer))
    assert response.status_code == 200
    assert response.json()["price"] == 3000
    assert response.json()["capacity"] == 80

    response = await client.put(url, json={"min_per_order": 20}, headers=auth_headers(organizer))
    assert response.status_code == 400

    response = await client.delete(url, headers=auth_headers(organizer))
    assert response.json() == {"deleted": True, "deactivated": False, "message": "Ticket type deleted"}
    assert (await client.get(url)).status_code == 404


async def test_ticket_type_with_sales_is_deactivated(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    await buy_tickets(client, buyer, event["id"], ticket_type["id"], quantity=3)

    url = f"{BASE}/events/{event['id']}/ticket-types/{ticket_type['id']}"
    response = await client.put(url, json={"capacity": 2}, headers=auth_headers(organizer))
    assert response.status_code == 400

    response = await client.delete(url, headers=auth_headers(organizer))
    assert response.json()["deactivated"] is True
    assert (await client.get(url)).json()["active"] is False


async def test_ticket_types_belong_to_the_owner(client, organizer, other_organizer):
    event = await create_event(client, organizer)
    response = await client.post(
        f"{BASE}/events/{event['id']}/ticket-types",
        json={"name": "Sneaky", "price": 100, "capacity": 5},
        headers=auth_headers(other_organizer),
    )
    assert response.status_code == 403


async def test_ticket_type_rejects_inverted_limits(client, organizer):
    event = await create_event(client, organizer)
    response = await client.post(
        f"{BASE}/events/{event['id']}/ticket-types",
        json={"name": "Odd", "price": 100, "capacity": 5, "min_per_order": 4, "max_per_order": 2},
        headers=auth_headers(organizer),
    )
    assert response.status_code == 422


async def test_ticketing_view_totals(client, organizer):
    event = await create_event(client, organizer)
    await create_ticket_type(client, organizer, event["id"], capacity=40)
    await create_ticket_type(client, organizer, event["id"], name="VIP", price=9000, capacity=10, display_order=1)
    await create_ticket_type(client, organizer, event["id"], name="Crew", price=0, capacity=5, visible=False)

    view = (await client.get(f"{BASE}/events/{event['id']}")).json()
    assert [item["name"] for item in view["ticket_types"]] == ["General Admission", "VIP"]
    assert view["summary"] == {
        "total_capacity": 50, "total_sold": 0, "total_available": 50, "sold_percentage": 0.0, "sold_out": False
    }


async def test_promo_code_lifecycle(client, organizer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    promos = f"{BASE}/events/{event['id']}/promo-codes"

    response = await client.post(
        promos,
        json={"code": " early-bird ", "discount_type": "percentage", "discount_amount": 10, "max_uses": 50},
        headers=auth_headers(organizer),
    )
    assert response.status_code == 201, response.text
    promo = response.json()
    assert promo["code"] == "EARLYBIRD"
    assert promo["uses_remaining"] == 50
    assert promo["running_low"] is False
    assert promo["expiring_soon"] is False

    response = await client.post(
        promos,
        json={"code": "LASTCALL", "discount_type": "fixed", "discount_amount": 100, "valid_until": future(days=2)},
        headers=auth_headers(organizer),
    )
    assert response.status_code == 201, response.text
    assert response.json()["expiring_soon"] is True

    response = await client.post(
        promos,
        json={"code": "EARLYBIRD", "discount_type": "fixed", "discount_amount": 500},
        headers=auth_headers(organizer),
    )
    assert response.status_code == 409

    response = await client.post(f"{BASE}/promo/validate", json={
        "code": "earlybird",
        "event_id": event["id"],
        "cart_items": [{"ticket_type_id": ticket_type["id"], "quantity": 2}],
    })
    result = response.json()
    assert result["valid"] is True
    assert result["subtotal"] == 5000
    assert result["discount"] == 500

    response = await client.delete(f"{promos}/{promo['id']}", headers=auth_headers(organizer))
    assert response.status_code == 204
    remaining = (await client.get(promos, headers=auth_headers(organizer))).json()
    assert [item["code"] for item in remaining] == ["LASTCALL"]


async def test_validate_reports_unusable_codes(client, organizer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    await client.post(
        f"{BASE}/events/{event['id']}/promo-codes",
        json={"code": "LATER", "discount_type": "fixed", "discount_amount": 500, "valid_from": future(5)},
        headers=auth_headers(organizer),
    )
    cart = [{"ticket_type_id": ticket_type["id"], "quantity": 1}]

    unknown = (await client.post(f"{BASE}/promo/validate", json={
        "code": "NOPE", "event_id": event["id"], "cart_items": cart,
    })).json()
    assert unknown["valid"] is False
    assert unknown["error_code"] == "NOT_FOUND"

    later = (await client.post(f"{BASE}/promo/validate", json={
        "code": "LATER", "event_id": event["id"], "cart_items": cart,
    })).json()
    assert later["valid"] is False
    assert later["error_code"] == "NOT_YET_VALID"
    assert later["discount"] == 0


async def test_capacity_cannot_drop_below_sold_and_reserved(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"], capacity=10)
    await buy_tickets(client, buyer, event["id"], ticket_type["id"], quantity=2)
    response = await client.post(
        f"{BASE}/checkout/start",
        json={"event_id": event["id"], "cart_items": [{"ticket_type_id": ticket_type["id"], "quantity": 1}]},
        headers=auth_headers(buyer),
    )
    assert response.status_code == 201

    url = f"{BASE}/events/{event['id']}/ticket-types/{ticket_type['id']}"
    response = await client.put(url, json={"capacity": 2}, headers=auth_headers(organizer))
    assert response.status_code == 400
    assert response.json()["detail"] == {
        "message": "Capacity cannot be lower than 3 (sold + reserved)",
        "min_capacity": 3,
        "sold": 2,
        "reserved": 1,
    }

    response = await client.put(url, json={"capacity": 3}, headers=auth_headers(organizer))
    assert response.status_code == 200
    assert response.json()["available"] == 0
