"""Refund and settlement requests end to end."""

import pytest

from conftest import auth_headers, buy_tickets, create_event, create_ticket_type

REFUNDS = "/api/v1/financials/refunds"
SETTLEMENTS = "/api/v1/financials/settlements"


@pytest.fixture
async def event_with_sales(client, organizer, buyer):
    event = await create_event(client, organizer)
    ticket_type = await create_ticket_type(client, organizer, event["id"])
    first = await buy_tickets(client, buyer, event["id"], ticket_type["id"], quantity=2)
    second = await buy_tickets(client, buyer, event["id"], ticket_type["id"], quantity=1)
    return {"event": event, "ticket_type": ticket_type, "orders": [first, second]}


class TestRefundRequests:
    async def test_cancellation_refund_flow(self, client, organizer, admin, buyer, event_with_sales, queued):
        event = event_with_sales["event"]
        response = await client.post(REFUNDS, json={
            "event_id": event["id"],
            "type": "EVENT_CANCELLATION",
            "reason": "Headliner unwell",
        }, headers=auth_headers(organizer))
        assert response.status_code == 201, response.text
        request = response.json()
        assert request["status"] == "PENDING"
        assert request["affected_orders_count"] == 2
        assert request["total_refund_amount"] == sum(order["total"] for order in event_with_sales["orders"])

        pending = (await client.get(f"{REFUNDS}/pending", headers=auth_headers(admin))).json()
        assert [item["id"] for item in pending] == [request["id"]]

        response = await client.post(f"{REFUNDS}/{request['id']}/process", headers=auth_headers(admin))
        assert response.status_code == 409

        response = await client.post(
            f"{REFUNDS}/{request['id']}/approve", json={"admin_notes": "ok"}, headers=auth_headers(admin)
        )
        assert response.json()["status"] == "APPROVED"

        response = await client.post(f"{REFUNDS}/{request['id']}/process", headers=auth_headers(admin))
        processed = response.json()
        assert processed["status"] == "PROCESSED"
        assert processed["refunds_processed"] == 2
        assert processed["refunds_failed"] == 0
        assert ("send_refund_decision_task", (request["id"],)) in queued

        for order in event_with_sales["orders"]:
            refreshed = (await client.get(
                f"/api/v1/ticketing/orders/{order['id']}", headers=auth_headers(buyer)
            )).json()
            assert refreshed["status"] == "refunded"
            tickets = (await client.get(
                f"/api/v1/ticketing/orders/{order['id']}/tickets", headers=auth_headers(buyer)
            )).json()
            assert all(ticket["status"] == "refunded" for ticket in tickets)

        ticket_type = (await client.get(
            f"/api/v1/ticketing/events/{event['id']}/ticket-types/{event_with_sales['ticket_type']['id']}"
        )).json()
        assert ticket_type["sold"] == 0

    async def test_single_order_refund_and_rejection(self, client, organizer, admin, event_with_sales):
        event = event_with_sales["event"]
        order = event_with_sales["orders"][1]
        response = await client.post(REFUNDS, json={
            "event_id": event["id"],
            "type": "SINGLE_ORDER",
            "reason": "Buyer double-booked",
            "order_ids": [order["id"]],
        }, headers=auth_headers(organizer))
        request = response.json()
        assert request["order_ids"] == [order["id"]]
        assert request["total_refund_amount"] == order["total"]

        response = await client.post(
            f"{REFUNDS}/{request['id']}/reject", json={"reason": "  Outside policy  "}, headers=auth_headers(admin)
        )
        rejected = response.json()
        assert rejected["status"] == "REJECTED"
        assert rejected["rejection_reason"] == "Outside policy"

        response = await client.post(f"{REFUNDS}/{request['id']}/approve", headers=auth_headers(admin))
        assert response.status_code == 409

    async def test_requests_are_scoped_to_their_organizer(
        self, client, organizer, other_organizer, event_with_sales
    ):
        event = event_with_sales["event"]
        response = await client.post(REFUNDS, json={
            "event_id": event["id"], "type": "EVENT_CANCELLATION", "reason": "Not mine",
        }, headers=auth_headers(other_organizer))
        assert response.status_code == 403

        request = (await client.post(REFUNDS, json={
            "event_id": event["id"], "type": "EVENT_CANCELLATION", "reason": "Storm",
        }, headers=auth_headers(organizer))).json()

        response = await client.get(f"{REFUNDS}/{request['id']}", headers=auth_headers(other_organizer))
        assert response.status_code == 403
        listing = (await client.get(REFUNDS, headers=auth_headers(other_organizer))).json()
        assert listing["requests"] == []

        response = await client.post(f"{REFUNDS}/{request['id']}/approve", headers=auth_headers(organizer))
        assert response.status_code == 403

    async def test_orders_must_belong_to_the_event(self, client, organizer, buyer, event_with_sales):
        other_event = await create_event(client, organizer, title="Matinee")
        other_type = await create_ticket_type(client, organizer, other_event["id"])
        stray = await buy_tickets(client, buyer, other_event["id"], other_type["id"], quantity=1)

        response = await client.post(REFUNDS, json={
            "event_id": event_with_sales["event"]["id"],
            "type": "BULK_REFUND",
            "reason": "Mixed up",
            "order_ids": [event_with_sales["orders"][0]["id"], stray["id"]],
        }, headers=auth_headers(organizer))
        assert response.status_code == 400


class TestSettlementRequests:
    async def test_settlement_flow(self, client, organizer, admin, event_with_sales, queued):
        event = event_with_sales["event"]
        financials = (await client.get(
            f"/api/v1/ticketing/events/{event['id']}/financials", headers=auth_headers(organizer)
        )).json()
        payout = financials["payout"]["payout"]
        assert payout == 7275

        response = await client.post(SETTLEMENTS, json={"event_id": event["id"]}, headers=auth_headers(organizer))
        assert response.status_code == 201, response.text
        request = response.json()
        assert request["amount"] == payout
        assert request["total_sales"] == 7500
        assert request["platform_fees"] == 225
        assert request["payment_method"] == "bank_transfer"

        response = await client.post(SETTLEMENTS, json={"event_id": event["id"]}, headers=auth_headers(organizer))
        assert response.status_code == 409

        response = await client.post(
            f"{SETTLEMENTS}/{request['id']}/mark-paid",
            json={"transaction_reference": "TRX-1"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 409

        await client.post(f"{SETTLEMENTS}/{request['id']}/approve", headers=auth_headers(admin))
        response = await client.post(
            f"{SETTLEMENTS}/{request['id']}/mark-paid",
            json={"transaction_reference": "TRX-1"},
            headers=auth_headers(admin),
        )
        paid = response.json()
        assert paid["status"] == "PAID"
        assert paid["transaction_reference"] == "TRX-1"
        assert paid["paid_at"] is not None
        assert [name for name, _ in queued].count("send_settlement_decision_task") == 2

        response = await client.post(SETTLEMENTS, json={"event_id": event["id"]}, headers=auth_headers(organizer))
        assert response.status_code == 400

    async def test_partial_settlement_leaves_the_rest_available(self, client, organizer, admin, event_with_sales):
        event = event_with_sales["event"]
        response = await client.post(
            SETTLEMENTS, json={"event_id": event["id"], "amount": 999999}, headers=auth_headers(organizer)
        )
        assert response.status_code == 400

        first = (await client.post(
            SETTLEMENTS, json={"event_id": event["id"], "amount": 5000}, headers=auth_headers(organizer)
        )).json()
        await client.post(f"{SETTLEMENTS}/{first['id']}/approve", headers=auth_headers(admin))
        await client.post(
            f"{SETTLEMENTS}/{first['id']}/mark-paid",
            json={"transaction_reference": "TRX-2"},
            headers=auth_headers(admin),
        )

        rest = (await client.post(SETTLEMENTS, json={"event_id": event["id"]}, headers=auth_headers(organizer))).json()
        assert rest["amount"] == 7275 - 5000

    async def test_rejected_request_frees_the_event(self, client, organizer, admin, event_with_sales):
        event = event_with_sales["event"]
        request = (await client.post(
            SETTLEMENTS, json={"event_id": event["id"]}, headers=auth_headers(organizer)
        )).json()

        response = await client.patch(
            f"{SETTLEMENTS}/{request['id']}",
            json={"status": "REJECTED", "rejection_reason": "Missing bank details"},
            headers=auth_headers(admin),
        )
        assert response.json()["status"] == "REJECTED"

        response = await client.post(SETTLEMENTS, json={"event_id": event["id"]}, headers=auth_headers(organizer))
        assert response.status_code == 201

    async def test_buyers_cannot_request_settlements(self, client, buyer, event_with_sales):
        response = await client.post(
            SETTLEMENTS, json={"event_id": event_with_sales["event"]["id"]}, headers=auth_headers(buyer)
        )
        assert response.status_code == 403
