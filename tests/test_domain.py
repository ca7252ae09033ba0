"""Tests for pure domain rules: request transitions, discounts and event forms."""

from uuid import uuid4

import pytest

from parlomo_platform.models import (
    RefundRequest,
    RefundRequestStatus,
    RefundRequestType,
    SettlementRequest,
    SettlementRequestStatus,
)
from parlomo_platform.schemas.financial import RefundRequestCreate
from parlomo_platform.schemas.public_event import PublicEventCreate, flatten_event_form, parse_age_restriction
from parlomo_platform.services.checkout_service import allocate_discount, merge_cart_items
from parlomo_platform.utils.exceptions import InvalidStateTransitionError, ValidationError


def refund_request(status=RefundRequestStatus.PENDING):
    return RefundRequest(
        id=uuid4(),
        type=RefundRequestType.SINGLE_ORDER,
        status=status,
        event_title="Gig",
        order_ids=[],
        affected_orders_count=1,
        total_refund_amount=1000,
        reason="Customer request",
    )


def settlement_request(status=SettlementRequestStatus.PENDING):
    return SettlementRequest(id=uuid4(), status=status, event_title="Gig", amount=5000)


class TestRefundTransitions:
    def test_approve_then_process(self):
        request = refund_request()
        admin_id = uuid4()
        request.approve("Looks fine", admin_id)
        assert request.status == RefundRequestStatus.APPROVED
        assert request.decided_by == admin_id

        request.mark_as_processed(2, 1, [{"order_id": "x", "error": "already refunded"}])
        assert request.status == RefundRequestStatus.PROCESSED
        assert request.refunds_failed == 1
        assert request.completed_at is not None

    def test_pending_cannot_be_processed(self):
        with pytest.raises(InvalidStateTransitionError):
            refund_request().mark_as_processed(1, 0)

    def test_rejection_needs_reason(self):
        request = refund_request()
        with pytest.raises(ValidationError):
            request.reject("  ")
        request.reject(" Outside policy ")
        assert request.rejection_reason == "Outside policy"

    def test_decided_requests_are_final(self):
        with pytest.raises(InvalidStateTransitionError):
            refund_request(RefundRequestStatus.REJECTED).approve()
        with pytest.raises(InvalidStateTransitionError):
            refund_request(RefundRequestStatus.PROCESSED).reject("late")


class TestSettlementTransitions:
    def test_approved_can_be_paid_or_rejected(self):
        request = settlement_request()
        request.approve()
        assert request.is_open
        request.mark_as_paid(" TX-123 ")
        assert request.status == SettlementRequestStatus.PAID
        assert request.transaction_reference == "TX-123"
        assert not request.is_open

        request = settlement_request(SettlementRequestStatus.APPROVED)
        request.reject("Bank details invalid")
        assert request.status == SettlementRequestStatus.REJECTED

    def test_pending_cannot_be_paid(self):
        with pytest.raises(InvalidStateTransitionError):
            settlement_request().mark_as_paid("TX-1")

    def test_paid_needs_reference(self):
        with pytest.raises(ValidationError):
            settlement_request(SettlementRequestStatus.APPROVED).mark_as_paid("")


class TestRefundRequestSchema:
    def test_single_order_needs_one_id(self):
        with pytest.raises(ValueError):
            RefundRequestCreate(event_id=uuid4(), type="SINGLE_ORDER", reason="x", order_ids=[])
        with pytest.raises(ValueError):
            RefundRequestCreate(event_id=uuid4(), type="BULK_REFUND", reason="x")

    def test_event_cancellation_needs_no_ids(self):
        request = RefundRequestCreate(event_id=uuid4(), type="EVENT_CANCELLATION", reason="Storm")
        assert request.order_ids == []


class TestAllocateDiscount:
    def test_proportional_split(self):
        items = [
            {"ticket_type_id": "a", "subtotal": 3000},
            {"ticket_type_id": "b", "subtotal": 1000},
        ]
        assert allocate_discount(items, 400, []) == [300, 100]

    def test_remainder_goes_to_last_line(self):
        items = [{"ticket_type_id": key, "subtotal": 1000} for key in ("a", "b", "c")]
        shares = allocate_discount(items, 100, [])
        assert sum(shares) == 100
        assert shares == [33, 33, 34]

    def test_only_applicable_lines_share(self):
        items = [
            {"ticket_type_id": "a", "subtotal": 3000},
            {"ticket_type_id": "b", "subtotal": 1000},
        ]
        assert allocate_discount(items, 500, ["b"]) == [0, 500]

    def test_no_discount(self):
        assert allocate_discount([{"ticket_type_id": "a", "subtotal": 100}], 0, []) == [0]

    def test_merge_cart_items(self):
        first, second = uuid4(), uuid4()
        merged = merge_cart_items([
            {"ticket_type_id": str(first), "quantity": 1},
            {"ticket_type_id": second, "quantity": 2},
            {"ticket_type_id": first, "quantity": 3},
        ])
        assert list(merged.items()) == [(first, 4), (second, 2)]


class TestEventForm:
    def test_nested_form_is_flattened(self):
        flat = flatten_event_form({
            "title": "Gig",
            "venue": {"name": "The Hall", "capacity": 300},
            "location": {"city": "Leeds", "postcode": "LS1", "coordinates": {"lat": 53.8, "lng": -1.5}},
            "organizer": {"name": "Promoter", "email": "p@example.com"},
            "category": {"slug": "music"},
        })
        assert flat["venue_name"] == "The Hall"
        assert flat["venue_capacity"] == 300
        assert flat["city"] == "Leeds"
        assert flat["latitude"] == 53.8
        assert flat["organizer_email"] == "p@example.com"
        assert flat["category"] == "music"
        assert "venue" not in flat

    def test_flat_fields_win(self):
        flat = flatten_event_form({"venue_name": "Explicit", "venue": "Ignored", "venue_address": "1 Road"})
        assert flat["venue_name"] == "Explicit"
        assert flat["address"] == "1 Road"

    def test_age_restriction(self):
        assert parse_age_restriction("18+") == 18
        assert parse_age_restriction("all_ages") == 0
        assert parse_age_restriction(None) == 0
        assert parse_age_restriction(21) == 21

    def test_create_schema(self):
        event = PublicEventCreate(
            title="Gig",
            start_date="2030-06-01T19:00:00Z",
            venue={"name": "The Hall"},
            age_restriction="16+",
            currency="gbp",
        )
        assert event.venue_name == "The Hall"
        assert event.age_restriction == 16
        assert event.currency == "GBP"

        with pytest.raises(ValueError):
            PublicEventCreate(title="Gig", start_date="2030-06-01T19:00:00Z", end_date="2030-05-01T19:00:00Z")
