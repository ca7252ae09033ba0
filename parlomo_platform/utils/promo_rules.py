"""
Promo code rules: validation order, discount calculation and code helpers.
"""

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from ..models.base import as_aware, utcnow
from .currency import apply_discount, format_currency

PROMO_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


class PromoReason:
    """Reason codes reported when a promo code cannot be used."""
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    MAX_USES_REACHED = "MAX_USES_REACHED"
    USER_LIMIT_REACHED = "USER_LIMIT_REACHED"
    NOT_APPLICABLE = "NOT_APPLICABLE"
    MIN_ORDER_NOT_MET = "MIN_ORDER_NOT_MET"


@dataclass
class PromoEvaluation:
    valid: bool
    discount: int = 0
    reason: Optional[str] = None
    message: str = ""
    applicable_subtotal: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "discount": self.discount,
            "error_code": self.reason,
            "message": self.message,
        }


def sanitize_promo_code(code: Optional[str]) -> str:
    """Upper-case and strip anything that is not A-Z or 0-9."""
    return re.sub(r"[^A-Z0-9]", "", (code or "").upper())


def generate_promo_code(prefix: str = "", length: int = 8) -> str:
    """Random code without look-alike characters, e.g. ``SUMMER7KQ2M9XH``."""
    body = "".join(secrets.choice(PROMO_CODE_ALPHABET) for _ in range(length))
    return f"{sanitize_promo_code(prefix)}{body}"


def invalid(reason: str, message: str) -> PromoEvaluation:
    return PromoEvaluation(valid=False, reason=reason, message=message)


def evaluate_promo(
    promo: Any,
    cart_items: Iterable[Dict[str, Any]],
    user_uses: int = 0,
    currency: str = "GBP",
    now: Optional[datetime] = None
) -> PromoEvaluation:
    """
    Check a promo code against a cart and compute its discount.

    Checks run in a fixed order so the buyer always sees the first blocking
    problem: inactive, not yet valid, expired, max uses, per-user limit,
    not applicable, minimum tickets, minimum purchase.

    Args:
        promo: PromoCode row (or None when the code does not exist)
        cart_items: dicts with ``ticket_type_id``, ``quantity`` and ``subtotal``
        user_uses: Paid orders and open checkouts by this buyer that carry the code
        currency: Currency used in messages
        now: Override for the current time

    Returns:
        PromoEvaluation
    """
    if promo is None:
        return invalid(PromoReason.NOT_FOUND, "Invalid promo code")

    now = now or utcnow()
    items = list(cart_items)

    if not promo.active:
        return invalid(PromoReason.INACTIVE, "Promo code is not active")

    valid_from = as_aware(promo.valid_from)
    if valid_from and now < valid_from:
        return invalid(PromoReason.NOT_YET_VALID, "Promo code is not yet valid")

    valid_until = as_aware(promo.valid_until)
    if valid_until and now > valid_until:
        return invalid(PromoReason.EXPIRED, "Promo code has expired")

    if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
        return invalid(PromoReason.MAX_USES_REACHED, "Promo code has reached maximum uses")

    if promo.max_uses_per_user and user_uses >= promo.max_uses_per_user:
        return invalid(PromoReason.USER_LIMIT_REACHED, "You have already used this promo code")

    applicable_ids = {str(type_id) for type_id in (promo.applicable_ticket_types or [])}
    if applicable_ids:
        applicable = [item for item in items if str(item["ticket_type_id"]) in applicable_ids]
        if not applicable:
            return invalid(PromoReason.NOT_APPLICABLE, "Promo code not applicable to selected tickets")
    else:
        applicable = items

    ticket_count = sum(int(item["quantity"]) for item in items)
    if promo.min_tickets and ticket_count < promo.min_tickets:
        return invalid(
            PromoReason.MIN_ORDER_NOT_MET,
            f"Minimum {promo.min_tickets} tickets required for this promo code"
        )

    subtotal = sum(int(item["subtotal"]) for item in items)
    if promo.min_purchase_amount and subtotal < promo.min_purchase_amount:
        return invalid(
            PromoReason.MIN_ORDER_NOT_MET,
            f"Minimum order value of {format_currency(promo.min_purchase_amount, currency)} required"
        )

    applicable_subtotal = sum(int(item["subtotal"]) for item in applicable)
    discount_type = getattr(promo.discount_type, "value", promo.discount_type)
    discount = apply_discount(applicable_subtotal, discount_type, promo.discount_amount)

    return PromoEvaluation(
        valid=True,
        discount=discount,
        message="Promo code applied",
        applicable_subtotal=applicable_subtotal,
    )


def is_expiring_soon(promo: Any, days: int = 7, now: Optional[datetime] = None) -> bool:
    valid_until = as_aware(promo.valid_until)
    if not valid_until:
        return False
    now = now or utcnow()
    return now <= valid_until <= now + timedelta(days=days)


def is_running_low(promo: Any, threshold: float = 0.1) -> bool:
    """True when some uses remain but no more than ``threshold`` of them."""
    if not promo.max_uses:
        return False
    remaining = promo.max_uses - promo.current_uses
    return 0 < remaining <= promo.max_uses * threshold
