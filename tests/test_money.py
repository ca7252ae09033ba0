"""Tests for currency helpers and fee calculation."""

from parlomo_platform.utils.currency import (
    apply_discount,
    calculate_percentage,
    calculate_tax,
    format_currency,
    round_half_up,
)
from parlomo_platform.utils.fees import (
    calculate_buyer_fees,
    calculate_organizer_payout,
    calculate_service_charges,
)


class TestCurrency:
    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4) == 2
        assert round_half_up(-2.5) == -3

    def test_format_currency(self):
        assert format_currency(1250, "GBP") == "£12.50"
        assert format_currency(-300, "usd") == "-$3.00"
        assert format_currency(123456, "EUR") == "€1,234.56"
        assert format_currency(500, "CHF") == "5.00 CHF"

    def test_percentage_and_tax(self):
        assert calculate_percentage(25, 200) == 12.5
        assert calculate_percentage(5, 0) == 0.0
        assert calculate_tax(1000, 20) == 200
        assert calculate_tax(1000, 0) == 0
        assert calculate_tax(1000, -5) == 0

    def test_apply_discount(self):
        assert apply_discount(1000, "percentage", 15) == 150
        assert apply_discount(999, "percentage", 50) == 500
        assert apply_discount(1000, "fixed", 2500) == 1000
        assert apply_discount(0, "fixed", 100) == 0
        assert apply_discount(1000, "bogus", 10) == 0


class TestFees:
    def test_default_buyer_fees(self):
        fees = calculate_buyer_fees(10000, ticket_count=2)
        # 5% service fee plus 2.00 processing
        assert fees.total_fees == 500 + 200
        assert [line.name for line in fees.lines] == ["Service Fee", "Processing Fee"]

    def test_service_fee_is_capped(self):
        fees = calculate_buyer_fees(100000)
        assert fees.lines[0].amount == 1000

    def test_no_fees_on_free_orders(self):
        assert calculate_buyer_fees(0).total_fees == 0

    def test_rule_based_fees(self):
        rules = [
            {"name": "Booking", "calculation_type": "per_ticket", "amount": 75, "payer": "buyer"},
            {"name": "Card", "calculation_type": "percentage", "amount": 2, "cap": 30, "payer": "buyer"},
            {"name": "Organizer", "calculation_type": "fixed", "amount": 500, "payer": "organizer"},
        ]
        fees = calculate_buyer_fees(5000, ticket_count=3, fees=rules)
        assert fees.total_fees == 225 + 30
        assert len(fees.lines) == 2

    def test_service_charges(self):
        charges = [
            {"title": "Cloakroom", "type": "per_ticket", "amount_type": "fixed_price", "amount": 100},
            {"title": "Booking", "type": "per_cart", "amount_type": "fixed_price", "amount": 150},
            {"title": "Venue levy", "type": "per_cart", "amount_type": "percentage", "amount": 10},
        ]
        breakdown = calculate_service_charges(charges, subtotal=2000, ticket_count=2)
        assert breakdown.total_fees == 200 + 150 + 200

    def test_organizer_payout(self):
        payout = calculate_organizer_payout(10000, refunds=2000, platform_fee_percent=3)
        assert payout["net_revenue"] == 8000
        assert payout["platform_fee"] == 240
        assert payout["payout"] == 7760
        assert payout["breakdown"]["refunds"] == -2000
