"""Checkout holds, order completion and ticket issuing."""

from datetime import timedelta
from uuid import UUID

import pytest
from sqlalchemy import update

from conftest import auth_headers, buy_tickets, create_event, create_ticket_type
from parlomo_platform.models import CheckoutSession, CheckoutSessionStatus
from parlomo_platform.models.base import utcnow
from parlomo_platform.services.checkout_service import CheckoutService
from parlomo_platform.utils.exceptions import CheckoutExpiredError

BASE = "/api/v1/ticketing"


async def start(client, buyer, event_id, items, promo_code=None):
    payload = {"event_id": event_id, "cart_items": items}
    if promo_code:
        payload["promo_code"] = promo_code
    return await client.post(f"{BASE}/checkout/start", json=payload, headers=auth_headers(buyer))


async def ticket_type_state(client, event_id, ticket_type_id):
    response = await client.get(f"{BASE}/events/{event_id}/ticket-types/{ticket_type_id}")
    return response.json()


async def test_full_checkout(client, organizer, buyer, queued):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])

    order = await buy_tickets(client, buyer, event["id"], ticket_type["id"], quantity=2)

    assert order["status"] == "paid"
    assert order["order_number"].startswith("ORD-")
    assert order["subtotal"] == 5000
    assert order["fees"] == 450
    assert order["tax"] == 0
    assert order["total"] == 5450
    assert order["currency"] == "GBP"
    assert order["customer_email"] == "ada@example.com"
    assert order["customer_name"] == "Ada Lovelace"
    assert order["total_items"] == 2
    assert ("send_order_confirmation_task", (order["id"],)) in queued

    state = await ticket_type_state(client, event["id"], ticket_type["id"])
    assert state["sold"] == 2
    assert state["reserved"] == 0

    response = await client.get(f"{BASE}/orders/{order['id']}/tickets", headers=auth_headers(buyer))
    tickets = response.json()
    assert len(tickets) == 2
    assert len({ticket["code"] for ticket in tickets}) == 2
    assert all(ticket["status"] == "valid" for ticket in tickets)
    assert all(ticket["qr_payload"] for ticket in tickets)
    assert all(ticket["can_refund"] and ticket["can_transfer"] for ticket in tickets)

    mine = (await client.get(f"{BASE}/orders/mine", headers=auth_headers(buyer))).json()
    assert [item["id"] for item in mine] == [order["id"]]


async def test_start_holds_tickets_until_cancelled(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"], capacity=5)

    response = await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 3}])
    assert response.status_code == 201
    session = response.json()
    assert session["status"] == "open"
    assert session["items"][0]["subtotal"] == 7500

    assert (await ticket_type_state(client, event["id"], ticket_type["id"]))["reserved"] == 3

    fetched = await client.get(f"{BASE}/checkout/{session['session_id']}", headers=auth_headers(buyer))
    assert fetched.json()["total"] == session["total"]

    response = await client.post(
        f"{BASE}/checkout/cancel", json={"session_id": session["session_id"]}, headers=auth_headers(buyer)
    )
    assert response.json()["status"] == "cancelled"
    assert (await ticket_type_state(client, event["id"], ticket_type["id"]))["reserved"] == 0

    response = await client.post(f"{BASE}/checkout/complete", json={
        "session_id": session["session_id"],
        "buyer_info": {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"},
    }, headers=auth_headers(buyer))
    assert response.status_code == 409


async def test_cannot_oversell(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"], capacity=4)
    await buy_tickets(client, buyer, event["id"], ticket_type["id"], quantity=3)

    response = await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 2}])
    assert response.status_code == 409

    state = await ticket_type_state(client, event["id"], ticket_type["id"])
    assert state["sold"] == 3
    assert state["reserved"] == 0


async def test_failed_line_releases_earlier_holds(client, organizer, buyer):
    event = await create_event(client, organizer)
    plenty = await create_ticket_type(client, organizer, event["id"])
    scarce = await create_ticket_type(client, organizer, event["id"], name="VIP", capacity=1)

    response = await start(client, buyer, event["id"], [
        {"ticket_type_id": plenty["id"], "quantity": 2},
        {"ticket_type_id": scarce["id"], "quantity": 2},
    ])
    assert response.status_code == 409
    assert (await ticket_type_state(client, event["id"], plenty["id"]))["reserved"] == 0


async def test_global_capacity(client, organizer, buyer):
    event = await create_event(client, organizer, global_capacity=3)
    first = await create_ticket_type(client, organizer, event["id"])
    second = await create_ticket_type(client, organizer, event["id"], name="VIP")

    response = await start(client, buyer, event["id"], [
        {"ticket_type_id": first["id"], "quantity": 2},
        {"ticket_type_id": second["id"], "quantity": 2},
    ])
    assert response.status_code == 409
    assert (await ticket_type_state(client, event["id"], first["id"]))["reserved"] == 0


async def test_per_order_limits(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"], max_per_order=4)

    response = await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 5}])
    assert response.status_code == 400

    response = await start(client, buyer, event["id"], [
        {"ticket_type_id": ticket_type["id"], "quantity": 3},
        {"ticket_type_id": ticket_type["id"], "quantity": 3},
    ])
    assert response.status_code == 400

    response = await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 11}])
    assert response.status_code == 400


async def test_unpublished_event_not_on_sale(client, organizer, buyer):
    event = await create_event(client, organizer, publish=False)
    ticket_type = await create_ticket_type(client, organizer, event["id"])

    response = await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 1}])
    assert response.status_code == 400


async def test_promo_discount_is_applied_and_counted(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    response = await client.post(
        f"{BASE}/events/{event['id']}/promo-codes",
        json={"code": "TENOFF", "discount_type": "percentage", "discount_amount": 10},
        headers=auth_headers(organizer),
    )
    promo = response.json()

    order = await buy_tickets(client, buyer, event["id"], ticket_type["id"], quantity=2, promo_code="tenoff")
    assert order["promo_code"] == "TENOFF"
    assert order["discount"] == 500
    assert order["fees"] == 425
    assert order["total"] == 4925
    assert sum(item["discount"] for item in order["items"]) == 500

    response = await client.get(
        f"{BASE}/events/{event['id']}/promo-codes/{promo['id']}", headers=auth_headers(organizer)
    )
    assert response.json()["current_uses"] == 1

    # One use per buyer: the second checkout goes ahead at full price
    response = await start(
        client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 1}], promo_code="TENOFF"
    )
    session = response.json()
    assert session["discount"] == 0
    assert session["promo_message"] == "You have already used this promo code"


async def test_other_buyers_cannot_see_orders(client, organizer, buyer, other_organizer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    order = await buy_tickets(client, buyer, event["id"], ticket_type["id"], quantity=1)

    response = await client.get(f"{BASE}/orders/{order['id']}", headers=auth_headers(other_organizer))
    assert response.status_code == 403

    response = await client.get(f"{BASE}/orders/{order['id']}", headers=auth_headers(organizer))
    assert response.status_code == 200


async def test_event_sales_views(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    await buy_tickets(client, buyer, event["id"], ticket_type["id"], quantity=2)

    orders = (await client.get(f"{BASE}/events/{event['id']}/orders", headers=auth_headers(organizer))).json()
    assert orders["pagination"]["total"] == 1
    assert orders["orders"][0]["ticket_count"] == 2

    attendees = (await client.get(f"{BASE}/events/{event['id']}/attendees", headers=auth_headers(organizer))).json()
    assert len(attendees) == 2
    assert all(attendee["name"] == "Ada Lovelace" for attendee in attendees)
    assert not any(attendee["checked_in"] for attendee in attendees)

    financials = (await client.get(f"{BASE}/events/{event['id']}/financials", headers=auth_headers(organizer))).json()
    assert financials["ticket_revenue"] == 5000
    assert financials["total_fees"] == 450
    assert financials["payout"]["platform_fee"] == 150
    assert financials["payout"]["payout"] == 4850


async def backdate_session(session_factory, session_id):
    async with session_factory() as session:
        checkout = await session.get(CheckoutSession, UUID(session_id))
        checkout.expires_at = utcnow() - timedelta(minutes=1)
        await session.commit()


async def test_expired_hold_cannot_complete(client, session_factory, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    session = (await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 2}])).json()
    await backdate_session(session_factory, session["session_id"])

    response = await client.post(f"{BASE}/checkout/complete", json={
        "session_id": session["session_id"],
        "buyer_info": {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"},
    }, headers=auth_headers(buyer))
    assert response.status_code == 410
    assert (await ticket_type_state(client, event["id"], ticket_type["id"]))["reserved"] == 0

    fetched = (await client.get(f"{BASE}/checkout/{session['session_id']}", headers=auth_headers(buyer))).json()
    assert fetched["status"] == "expired"


async def test_expiry_sweep_releases_holds(client, session_factory, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    stale = (await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 2}])).json()
    await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 1}])
    await backdate_session(session_factory, stale["session_id"])

    async with session_factory() as session:
        assert await CheckoutService(session).expire_checkout_sessions() == 1

    assert (await ticket_type_state(client, event["id"], ticket_type["id"]))["reserved"] == 1


async def test_sessions_are_private(client, organizer, buyer, other_organizer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    session = (await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 1}])).json()

    response = await client.get(f"{BASE}/checkout/{session['session_id']}", headers=auth_headers(other_organizer))
    assert response.status_code == 404


BUYER_INFO = {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"}


async def complete(client, buyer, session_id):
    return await client.post(
        f"{BASE}/checkout/complete",
        json={"session_id": session_id, "buyer_info": BUYER_INFO},
        headers=auth_headers(buyer),
    )


async def withdraw_event(client, organizer, event, ticket_type, how):
    if how == "deactivate":
        url = f"{BASE}/events/{event['id']}/ticket-types/{ticket_type['id']}"
        response = await client.put(url, json={"active": False}, headers=auth_headers(organizer))
    else:
        response = await client.post(f"/api/v1/public-events/{event['id']}/{how}", headers=auth_headers(organizer))
    assert response.status_code == 200, response.text


@pytest.mark.parametrize("how", ["cancel", "unpublish", "deactivate"])
async def test_withdrawn_sales_cannot_complete(client, organizer, buyer, how):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    session = (await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 2}])).json()

    await withdraw_event(client, organizer, event, ticket_type, how)

    response = await complete(client, buyer, session["session_id"])
    assert response.status_code == 409

    fetched = (await client.get(f"{BASE}/checkout/{session['session_id']}", headers=auth_headers(buyer))).json()
    assert fetched["status"] == "failed"
    assert (await client.get(f"{BASE}/orders/mine", headers=auth_headers(buyer))).json() == []

    state = await ticket_type_state(client, event["id"], ticket_type["id"])
    assert state["sold"] == 0
    assert state["reserved"] == 0


async def create_promo(client, organizer, event_id, **fields):
    payload = {"code": "ONCE", "discount_type": "fixed", "discount_amount": 500}
    payload.update(fields)
    response = await client.post(
        f"{BASE}/events/{event_id}/promo-codes", json=payload, headers=auth_headers(organizer)
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_open_session_counts_towards_per_user_limit(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    await create_promo(client, organizer, event["id"], max_uses_per_user=1)
    cart = [{"ticket_type_id": ticket_type["id"], "quantity": 1}]

    first = (await start(client, buyer, event["id"], cart, promo_code="ONCE")).json()
    second = (await start(client, buyer, event["id"], cart, promo_code="ONCE")).json()
    assert first["discount"] == 500
    assert second["discount"] == 0
    assert second["promo_message"] == "You have already used this promo code"

    discounts = []
    for session in (first, second):
        response = await complete(client, buyer, session["session_id"])
        assert response.status_code == 201, response.text
        discounts.append(response.json()["order"]["discount"])
    assert discounts == [500, 0]


async def test_per_user_limit_rechecked_on_completion(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    promo = await create_promo(client, organizer, event["id"], max_uses_per_user=2)
    cart = [{"ticket_type_id": ticket_type["id"], "quantity": 1}]

    first = (await start(client, buyer, event["id"], cart, promo_code="ONCE")).json()
    second = (await start(client, buyer, event["id"], cart, promo_code="ONCE")).json()
    assert first["discount"] == second["discount"] == 500

    response = await client.put(
        f"{BASE}/events/{event['id']}/promo-codes/{promo['id']}",
        json={"max_uses_per_user": 1},
        headers=auth_headers(organizer),
    )
    assert response.status_code == 200

    assert (await complete(client, buyer, first["session_id"])).status_code == 201
    response = await complete(client, buyer, second["session_id"])
    assert response.status_code == 409

    fetched = (await client.get(f"{BASE}/checkout/{second['session_id']}", headers=auth_headers(buyer))).json()
    assert fetched["status"] == "failed"
    state = await ticket_type_state(client, event["id"], ticket_type["id"])
    assert state["sold"] == 1
    assert state["reserved"] == 0

    response = await client.get(
        f"{BASE}/events/{event['id']}/promo-codes/{promo['id']}", headers=auth_headers(organizer)
    )
    assert response.json()["current_uses"] == 1


async def test_completion_after_sweep_does_not_sell(client, session_factory, organizer, buyer, monkeypatch):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    session = (await start(client, buyer, event["id"], [{"ticket_type_id": ticket_type["id"], "quantity": 2}])).json()

    async with session_factory() as db:
        service = CheckoutService(db)
        load = service.get_session

        async def load_then_expire(session_id, user):
            # The sweep commits between reading the session and claiming it
            checkout = await load(session_id, user)
            await db.execute(
                update(CheckoutSession)
                .where(CheckoutSession.id == checkout.id)
                .values(status=CheckoutSessionStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return checkout

        monkeypatch.setattr(service, "get_session", load_then_expire)
        with pytest.raises(CheckoutExpiredError):
            await service.complete_checkout(UUID(session["session_id"]), BUYER_INFO, buyer)

    state = await ticket_type_state(client, event["id"], ticket_type["id"])
    assert state["sold"] == 0
    assert (await client.get(f"{BASE}/orders/mine", headers=auth_headers(buyer))).json() == []
