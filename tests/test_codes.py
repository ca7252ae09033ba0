"""Tests for ticket codes, QR payloads, slugs and promo code helpers."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from jose import jwt

from parlomo_platform.config import get_settings
from parlomo_platform.utils.promo_rules import (
    PromoReason,
    evaluate_promo,
    generate_promo_code,
    is_expiring_soon,
    is_running_low,
    sanitize_promo_code,
)
from parlomo_platform.utils.qr_tokens import generate_qr_payload, verify_qr_payload
from parlomo_platform.utils.slugs import slugify, unique_slug
from parlomo_platform.utils.ticket_codes import (
    ean13_check_digit,
    format_order_number,
    generate_barcode_number,
    generate_ticket_code,
    generate_ticket_codes,
    is_valid_barcode,
    is_valid_ticket_code,
    parse_ticket_code,
)


class TestTicketCodes:
    def test_generated_codes_are_valid(self):
        code = generate_ticket_code()
        assert is_valid_ticket_code(code)
        assert parse_ticket_code(code.lower()) == code[4:]

    def test_batch_skips_existing(self):
        existing = {generate_ticket_code() for _ in range(5)}
        codes = generate_ticket_codes(20, existing=existing)
        assert len(set(codes)) == 20
        assert not existing & set(codes)

    def test_malformed_codes(self):
        assert parse_ticket_code("TKT-123") is None
        assert parse_ticket_code(None) is None
        assert not is_valid_ticket_code("ABC-ABCDEFGHJ")

    def test_barcodes(self):
        assert ean13_check_digit("400638133393") == 1
        barcode = generate_barcode_number()
        assert barcode.startswith("200")
        assert is_valid_barcode(barcode)
        assert not is_valid_barcode("4006381333932")
        with pytest.raises(ValueError):
            ean13_check_digit("123")

    def test_numbers(self):
        assert format_order_number(2026, 42) == "ORD-2026-000042"


class TestQrPayload:
    def test_round_trip(self):
        token = generate_qr_payload("t-1", "TKT-ABCDEFGHJ", "e-1", "tt-1", "o-1")
        claims = verify_qr_payload(token)
        assert claims["ticket_code"] == "TKT-ABCDEFGHJ"
        assert claims["event_id"] == "e-1"
        assert claims["ticket_type_id"] == "tt-1"

    def test_tampered_payload_is_rejected(self):
        token = generate_qr_payload("t-1", "TKT-ABCDEFGHJ", "e-1", None, "o-1")
        assert verify_qr_payload(token[:-2] + "xx") is None

    def test_foreign_issuer_is_rejected(self):
        settings = get_settings()
        token = jwt.encode(
            {"ticketCode": "TKT-ABCDEFGHJ", "iss": "someone-else", "sub": settings.qr_token_subject},
            settings.qr_token_secret,
            algorithm=settings.ALGORITHM,
        )
        assert verify_qr_payload(token) is None

    def test_expired_payload_is_rejected(self):
        issued = datetime.now(timezone.utc) - timedelta(days=get_settings().qr_token_expire_days + 1)
        token = generate_qr_payload("t-1", "TKT-ABCDEFGHJ", "e-1", None, "o-1", issued_at=issued)
        assert verify_qr_payload(token) is None


class TestSlugs:
    def test_slugify(self):
        assert slugify("Jazz & Blues Night!") == "jazz-blues-night"
        assert slugify("Café Señor") == "cafe-senor"
        assert slugify("!!!", fallback="event") == "event"

    async def test_unique_slug(self):
        taken = {"gig", "gig-1"}

        async def exists(slug):
            return slug in taken

        assert await unique_slug("gig", exists) == "gig-2"
        assert await unique_slug("party", exists) == "party"


def make_promo(**overrides):
    values = dict(
        active=True,
        valid_from=None,
        valid_until=None,
        max_uses=None,
        current_uses=0,
        max_uses_per_user=1,
        applicable_ticket_types=[],
        min_tickets=0,
        min_purchase_amount=0,
        discount_type="percentage",
        discount_amount=10,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


CART = [
    {"ticket_type_id": "vip", "quantity": 1, "subtotal": 5000},
    {"ticket_type_id": "standard", "quantity": 2, "subtotal": 3000},
]


class TestPromoRules:
    def test_sanitize_and_generate(self):
        assert sanitize_promo_code(" summer-25! ") == "SUMMER25"
        code = generate_promo_code("vip", length=6)
        assert code.startswith("VIP")
        assert len(code) == 9

    def test_valid_percentage(self):
        result = evaluate_promo(make_promo(), CART)
        assert result.valid
        assert result.discount == 800

    def test_restricted_to_ticket_types(self):
        result = evaluate_promo(make_promo(applicable_ticket_types=["vip"]), CART)
        assert result.discount == 500
        assert result.applicable_subtotal == 5000

        result = evaluate_promo(make_promo(applicable_ticket_types=["balcony"]), CART)
        assert result.reason == PromoReason.NOT_APPLICABLE

    def test_checks_run_in_order(self):
        now = datetime.now(timezone.utc)
        assert evaluate_promo(None, CART).reason == PromoReason.NOT_FOUND
        assert evaluate_promo(make_promo(active=False, max_uses=1, current_uses=1), CART).reason == PromoReason.INACTIVE
        assert evaluate_promo(
            make_promo(valid_from=now + timedelta(days=1)), CART
        ).reason == PromoReason.NOT_YET_VALID
        assert evaluate_promo(
            make_promo(valid_until=now - timedelta(days=1), max_uses=1, current_uses=1), CART
        ).reason == PromoReason.EXPIRED
        assert evaluate_promo(make_promo(max_uses=5, current_uses=5), CART).reason == PromoReason.MAX_USES_REACHED
        assert evaluate_promo(make_promo(), CART, user_uses=1).reason == PromoReason.USER_LIMIT_REACHED

    def test_minimums(self):
        result = evaluate_promo(make_promo(min_tickets=4), CART)
        assert result.reason == PromoReason.MIN_ORDER_NOT_MET

        result = evaluate_promo(make_promo(min_purchase_amount=10000), CART, currency="GBP")
        assert result.reason == PromoReason.MIN_ORDER_NOT_MET
        assert "£100.00" in result.message

    def test_fixed_discount_is_capped(self):
        result = evaluate_promo(make_promo(discount_type="fixed", discount_amount=20000), CART)
        assert result.discount == 8000

    def test_expiry_and_usage_flags(self):
        now = datetime.now(timezone.utc)
        assert is_expiring_soon(make_promo(valid_until=now + timedelta(days=3)), now=now)
        assert not is_expiring_soon(make_promo(valid_until=now + timedelta(days=30)), now=now)
        assert is_running_low(make_promo(max_uses=100, current_uses=95))
        assert not is_running_low(make_promo(max_uses=None))

    def test_running_low_boundaries(self):
        assert is_running_low(make_promo(max_uses=100, current_uses=90))
        assert not is_running_low(make_promo(max_uses=100, current_uses=89))
        assert not is_running_low(make_promo(max_uses=100, current_uses=100))
