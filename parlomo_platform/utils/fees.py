"""
Fee calculation for ticket orders.

Buyer fees are added on top of the discounted subtotal at checkout;
organizer fees are deducted from revenue when paying out.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from ..config import get_settings
from .currency import round_half_up


@dataclass
class FeeLine:
    name: str
    amount: int
    description: str = ""
    type: str = "service"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "amount": self.amount,
            "description": self.description,
            "type": self.type,
        }


@dataclass
class FeeBreakdown:
    total_fees: int = 0
    lines: List[FeeLine] = field(default_factory=list)

    def add(self, line: FeeLine) -> None:
        if line.amount <= 0:
            return
        self.lines.append(line)
        self.total_fees += line.amount

    def extend(self, other: "FeeBreakdown") -> None:
        for line in other.lines:
            self.add(line)

    def to_list(self) -> List[Dict[str, Any]]:
        return [line.to_dict() for line in self.lines]


def _percent_of(amount: int, percent: float) -> int:
    return round_half_up(Decimal(amount) * Decimal(str(percent)) / 100)


def _fee_value(rule: Any, name: str) -> Any:
    """Read a field from a Fee row or a plain dict rule."""
    if isinstance(rule, dict):
        return rule.get(name)
    value = getattr(rule, name, None)
    return getattr(value, "value", value)


def default_buyer_fees(subtotal: int) -> FeeBreakdown:
    """Service fee (percent, capped) plus a fixed processing fee per order."""
    settings = get_settings()
    breakdown = FeeBreakdown()
    if subtotal <= 0:
        return breakdown

    service_fee = min(_percent_of(subtotal, settings.service_fee_percent), settings.service_fee_cap)
    breakdown.add(FeeLine(
        name="Service Fee",
        amount=service_fee,
        description=f"{settings.service_fee_percent:g}% (max {settings.service_fee_cap / 100:.2f})",
        type="service",
    ))
    breakdown.add(FeeLine(
        name="Processing Fee",
        amount=settings.processing_fee,
        description="Per order",
        type="payment",
    ))
    return breakdown


def calculate_rule_fee(rule: Any, subtotal: int, ticket_count: int = 0) -> int:
    """Amount charged by a single fee rule."""
    calculation = _fee_value(rule, "calculation_type")
    amount = _fee_value(rule, "amount") or 0

    if calculation == "percentage":
        fee = _percent_of(subtotal, amount)
    elif calculation == "fixed":
        fee = round_half_up(amount)
    elif calculation == "per_ticket":
        fee = round_half_up(Decimal(str(amount)) * ticket_count)
    else:
        fee = 0

    cap = _fee_value(rule, "cap")
    if cap is not None and fee > cap:
        fee = int(cap)
    return fee


def calculate_buyer_fees(
    subtotal: int,
    ticket_count: int = 0,
    fees: Optional[Iterable[Any]] = None
) -> FeeBreakdown:
    """
    Calculate fees paid by the buyer.

    Args:
        subtotal: Discounted subtotal in minor units
        ticket_count: Number of tickets in the order
        fees: Active fee rules; when empty the configured defaults apply

    Returns:
        FeeBreakdown with one line per charged fee
    """
    rules = [rule for rule in (fees or []) if (_fee_value(rule, "payer") or "buyer") == "buyer"]
    if not rules:
        return default_buyer_fees(subtotal)

    breakdown = FeeBreakdown()
    if subtotal <= 0:
        return breakdown

    for rule in rules:
        breakdown.add(FeeLine(
            name=_fee_value(rule, "name"),
            amount=calculate_rule_fee(rule, subtotal, ticket_count),
            description=_fee_value(rule, "description") or "",
            type=_fee_value(rule, "type") or "service",
        ))
    return breakdown


def calculate_service_charges(
    charges: Iterable[Dict[str, Any]],
    subtotal: int,
    ticket_count: int
) -> FeeBreakdown:
    """
    Event-level service charges configured by the organizer.

    ``per_ticket`` charges apply once per ticket and ``per_cart`` charges
    once per order; ``percentage`` amounts are a percent of the subtotal.
    """
    breakdown = FeeBreakdown()
    for charge in charges or []:
        amount_type = charge.get("amount_type", "fixed_price")
        amount = charge.get("amount", 0) or 0
        if amount_type == "percentage":
            charged = _percent_of(subtotal, amount)
        elif charge.get("type", "per_ticket") == "per_ticket":
            charged = round_half_up(amount) * ticket_count
        else:
            charged = round_half_up(amount)

        breakdown.add(FeeLine(
            name=charge.get("title") or "Service Charge",
            amount=charged,
            description=charge.get("type", "per_ticket").replace("_", " "),
            type="service",
        ))
    return breakdown


def calculate_organizer_fees(subtotal: int, platform_fee_percent: Optional[float] = None) -> Dict[str, Any]:
    """Platform fee deducted from the organizer's revenue."""
    percent = get_settings().platform_fee_percent if platform_fee_percent is None else platform_fee_percent
    platform_fee = _percent_of(subtotal, percent) if subtotal > 0 else 0
    return {
        "platform_fee": platform_fee,
        "total_fees": platform_fee,
        "breakdown": [
            {
                "name": "Platform Fee",
                "amount": platform_fee,
                "description": f"{percent:g}% of ticket price",
            }
        ],
    }


def calculate_organizer_payout(
    ticket_revenue: int,
    refunds: int = 0,
    platform_fee_percent: Optional[float] = None,
    currency: Optional[str] = None
) -> Dict[str, Any]:
    """Net amount owed to the organizer after refunds and platform fee."""
    net_revenue = ticket_revenue - refunds
    organizer_fees = calculate_organizer_fees(net_revenue, platform_fee_percent)
    payout = net_revenue - organizer_fees["total_fees"]

    return {
        "ticket_revenue": ticket_revenue,
        "refunds": refunds,
        "net_revenue": net_revenue,
        "platform_fee": organizer_fees["platform_fee"],
        "payout": payout,
        "currency": currency or get_settings().default_currency,
        "breakdown": {
            "gross": ticket_revenue,
            "refunds": -refunds,
            "platform_fee": -organizer_fees["platform_fee"],
            "net": payout,
        },
    }
