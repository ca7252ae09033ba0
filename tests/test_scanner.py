"""Door scanning: check-in, refusals and read-only checks."""

from uuid import UUID

import pytest

from conftest import auth_headers, buy_tickets, create_event, create_ticket_type
from parlomo_platform.models import Ticket, TicketStatus
from parlomo_platform.services.order_service import OrderService

SCAN = "/api/v1/ticketing/scanner/scan"
CHECK = "/api/v1/ticketing/scanner/check"


@pytest.fixture
async def sold(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"], name="Standing")
    order = await buy_tickets(client, buyer, event["id"], ticket_type["id"], quantity=2)
    response = await client.get(f"/api/v1/ticketing/orders/{order['id']}/tickets", headers=auth_headers(buyer))
    return {"event": event, "order": order, "tickets": response.json()}


async def test_scan_checks_in_once(client, organizer, sold):
    ticket = sold["tickets"][0]

    response = await client.post(
        SCAN,
        json={"ticket_code": ticket["code"].lower(), "event_id": sold["event"]["id"], "location": "Gate A"},
        headers=auth_headers(organizer),
    )
    assert response.status_code == 200
    result = response.json()
    assert result["valid"] is True
    assert result["message"] == "Ticket validated successfully"
    assert result["ticket"]["status"] == "used"
    assert result["ticket"]["ticket_type"] == "Standing"
    assert result["ticket"]["order_number"] == sold["order"]["order_number"]
    assert result["event"]["id"] == sold["event"]["id"]

    again = (await client.post(SCAN, json={"ticket_code": ticket["code"]}, headers=auth_headers(organizer))).json()
    assert again["valid"] is False
    assert again["reason"] == "ALREADY_USED"


async def test_scan_by_qr_payload(client, organizer, sold):
    ticket = sold["tickets"][1]
    result = (await client.post(
        SCAN, json={"qr_payload": ticket["qr_payload"]}, headers=auth_headers(organizer)
    )).json()
    assert result["valid"] is True
    assert result["ticket"]["code"] == ticket["code"]


async def test_tampered_qr_is_refused(client, organizer, sold):
    payload = sold["tickets"][0]["qr_payload"][:-4] + "AAAA"
    result = (await client.post(SCAN, json={"qr_payload": payload}, headers=auth_headers(organizer))).json()
    assert result["valid"] is False
    assert result["reason"] == "INVALID_QR"


async def test_unknown_code(client, organizer, sold):
    result = (await client.post(SCAN, json={"ticket_code": "ZZZZZZZZ"}, headers=auth_headers(organizer))).json()
    assert result == {"valid": False, "reason": "NOT_FOUND", "message": "This ticket does not exist in our system",
                      "ticket": None, "event": None}


async def test_other_organizers_cannot_scan(client, other_organizer, admin, sold):
    code = sold["tickets"][0]["code"]
    result = (await client.post(SCAN, json={"ticket_code": code}, headers=auth_headers(other_organizer))).json()
    assert result["valid"] is False
    assert result["reason"] == "WRONG_ORGANIZER"

    result = (await client.post(CHECK, json={"ticket_code": code}, headers=auth_headers(admin))).json()
    assert result["valid"] is True


async def test_ticket_for_another_event(client, organizer, sold):
    other_event = await create_event(client, organizer, title="Another Night")
    result = (await client.post(
        SCAN,
        json={"ticket_code": sold["tickets"][0]["code"], "event_id": other_event["id"]},
        headers=auth_headers(organizer),
    )).json()
    assert result["valid"] is False
    assert result["reason"] == "WRONG_EVENT"


async def test_check_does_not_check_in(client, organizer, sold):
    code = sold["tickets"][0]["code"]
    for _ in range(2):
        result = (await client.post(CHECK, json={"ticket_code": code}, headers=auth_headers(organizer))).json()
        assert result["valid"] is True
        assert result["message"] == "Ticket is valid"
        assert result["ticket"]["status"] == "valid"


async def test_buyers_cannot_scan(client, buyer, sold):
    response = await client.post(SCAN, json={"ticket_code": sold["tickets"][0]["code"]}, headers=auth_headers(buyer))
    assert response.status_code == 403


async def test_scan_needs_code_or_payload(client, organizer):
    response = await client.post(SCAN, json={"location": "Gate B"}, headers=auth_headers(organizer))
    assert response.status_code == 422


async def set_ticket_status(session_factory, ticket_id, status):
    async with session_factory() as session:
        ticket = await session.get(Ticket, UUID(ticket_id))
        ticket.status = status
        await session.commit()


async def test_refunded_ticket_is_refused(client, session_factory, organizer, sold):
    async with session_factory() as session:
        await OrderService(session).refund_order(UUID(sold["order"]["id"]))
        await session.commit()

    for url in (CHECK, SCAN):
        result = (await client.post(
            url, json={"ticket_code": sold["tickets"][0]["code"]}, headers=auth_headers(organizer)
        )).json()
        assert result["valid"] is False
        assert result["reason"] == "REFUNDED"
        assert result["ticket"]["status"] == "refunded"


@pytest.mark.parametrize("status, reason", [
    (TicketStatus.CANCELLED, "CANCELLED"),
    (TicketStatus.TRANSFERRED, "TRANSFERRED"),
])
async def test_inactive_tickets_are_refused(client, session_factory, organizer, sold, status, reason):
    ticket = sold["tickets"][0]
    await set_ticket_status(session_factory, ticket["id"], status)

    result = (await client.post(SCAN, json={"ticket_code": ticket["code"]}, headers=auth_headers(organizer))).json()
    assert result["valid"] is False
    assert result["reason"] == reason
    assert result["ticket"]["status"] == status.value

    async with session_factory() as session:
        stored = await session.get(Ticket, UUID(ticket["id"]))
        assert stored.status == status
        assert stored.used_at is None


async def test_scan_by_barcode(client, organizer, sold):
    ticket = sold["tickets"][0]
    result = (await client.post(
        SCAN, json={"ticket_code": f" {ticket['barcode']} "}, headers=auth_headers(organizer)
    )).json()
    assert result["valid"] is True
    assert result["ticket"]["code"] == ticket["code"]


async def test_malformed_input_is_not_found(client, organizer, sold):
    for typed in ("TKT-12", "2001234567890", "   "):
        result = (await client.post(SCAN, json={"ticket_code": typed}, headers=auth_headers(organizer))).json()
        assert result["reason"] == "NOT_FOUND"
