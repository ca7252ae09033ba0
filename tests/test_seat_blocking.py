"""Seat blocking against a mocked seats.io API."""

import json
from uuid import UUID

import httpx
import pytest

from conftest import auth_headers, create_event, create_ticket_type
from parlomo_platform.models import BlockReason
from parlomo_platform.services.seat_blocking_service import SeatBlockingService
from parlomo_platform.services.seatsio_client import SeatsioClient
from parlomo_platform.utils.exceptions import SeatsioServiceError, ValidationError


class FakeSeatsio:
    """Records requests and answers like seats.io."""

    def __init__(self, summary=None, fail_with=None):
        self.requests = []
        self.summary = summary or {}
        self.fail_with = fail_with

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"messages": ["Chart not found"]})
        if request.url.path.endswith("/summary/byCategoryLabel"):
            return httpx.Response(200, json=self.summary)
        return httpx.Response(204)


def seatsio(fake: FakeSeatsio) -> SeatsioClient:
    client = SeatsioClient(secret_key="sk-test", transport=httpx.MockTransport(fake))
    client.breaker.reset()
    return client


@pytest.fixture
async def seated_event(client, organizer):
    return await create_event(client, organizer, event_type="seated", seatsio_event_key="evt-hall")


async def test_block_and_unblock(session_factory, organizer, seated_event):
    fake = FakeSeatsio()
    event_id = UUID(seated_event["id"])

    async with session_factory() as session:
        service = SeatBlockingService(session, client=seatsio(fake))
        result = await service.block_seats(event_id, ["A-1", "A-2"], BlockReason.VIP, organizer, notes="Band guests")
        assert result["status"] == "VIP Reserved"

        # Re-blocking replaces the reason rather than duplicating the record
        await service.block_seats(event_id, ["A-2"], BlockReason.SPONSOR, organizer)
        blocks = await service.list_blocked_seats(event_id, organizer)
        assert [(block.seat_label, block.display_name) for block in blocks] == [
            ("A-1", "VIP Reserved"),
            ("A-2", "Sponsor Reserved"),
        ]

        await service.unblock_seats(event_id, ["A-1"], organizer)
        blocks = await service.list_blocked_seats(event_id, organizer)
        assert [block.seat_label for block in blocks] == ["A-2"]

    assert fake.requests[0] == (
        "POST",
        "/events/evt-hall/actions/change-object-status",
        {"objects": ["A-1", "A-2"], "status": "VIP Reserved"},
    )
    assert fake.requests[-1] == ("POST", "/events/evt-hall/actions/release", {"objects": ["A-1"]})


async def test_seatsio_rejection_keeps_local_state(session_factory, organizer, seated_event):
    fake = FakeSeatsio(fail_with=404)
    event_id = UUID(seated_event["id"])

    async with session_factory() as session:
        service = SeatBlockingService(session, client=seatsio(fake))
        with pytest.raises(SeatsioServiceError) as exc_info:
            await service.block_seats(event_id, ["B-1"], BlockReason.TECHNICAL, organizer)
        assert exc_info.value.status_code == 502
        assert await service.list_blocked_seats(event_id, organizer) == []


async def test_availability_maps_categories_to_ticket_types(client, session_factory, organizer, seated_event):
    await create_ticket_type(client, organizer, seated_event["id"], name="Stalls", price=4500, seat_section="stalls")
    fake = FakeSeatsio(summary={
        "Stalls": {"count": 100, "byStatus": {"free": 70, "booked": 20, "reservedByToken": 4}},
        "Balcony": {"count": 40, "byStatus": {"free": 40}},
    })

    async with session_factory() as session:
        service = SeatBlockingService(session, client=seatsio(fake))
        availability = await service.seat_availability(UUID(seated_event["id"]), organizer)

    stalls = availability["categories"]["Stalls"]
    assert (stalls["available"], stalls["booked"], stalls["held"], stalls["blocked"]) == (70, 20, 4, 6)
    assert stalls["ticket_type"]["name"] == "Stalls"
    assert stalls["ticket_type"]["price_formatted"] == "£45.00"
    assert availability["categories"]["Balcony"]["ticket_type"] is None


async def test_general_admission_events_cannot_block(client, session_factory, organizer):
    event = await create_event(client, organizer)

    response = await client.post(
        f"/api/v1/ticketing/events/{event['id']}/seats/block",
        json={"seat_labels": ["A-1"], "reason": "VIP"},
        headers=auth_headers(organizer),
    )
    assert response.status_code == 400

    async with session_factory() as session:
        service = SeatBlockingService(session, client=seatsio(FakeSeatsio()))
        with pytest.raises(ValidationError):
            await service.seat_availability(UUID(event["id"]), organizer)


async def test_blocking_requires_ownership(client, other_organizer, seated_event):
    response = await client.post(
        f"/api/v1/ticketing/events/{seated_event['id']}/seats/block",
        json={"seat_labels": ["A-1"], "reason": "VIP"},
        headers=auth_headers(other_organizer),
    )
    assert response.status_code == 403
