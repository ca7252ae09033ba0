"""
Promo code service: event-scoped discount codes.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import CheckoutSession, CheckoutSessionStatus, Order, OrderStatus, PromoCode, TicketType, User
from ..models.base import utcnow
from ..schemas.ticketing import PromoCodeCreate, PromoCodeUpdate
from ..utils.exceptions import (
    DuplicateResourceError,
    PromoCodeError,
    PromoCodeNotFoundError,
    TicketTypeNotFoundError,
    ValidationError,
)
from ..utils.promo_rules import PromoEvaluation, PromoReason, evaluate_promo, sanitize_promo_code
from .public_event_service import PublicEventService, ensure_event_owner

logger = logging.getLogger(__name__)


class PromoCodeService:
    """Service class for promo code management and validation."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = PublicEventService(db)

    async def list_promo_codes(self, event_id: UUID, user: User) -> List[PromoCode]:
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)
        result = await self.db.execute(
            select(PromoCode)
            .where(PromoCode.event_id == event.id)
            .order_by(PromoCode.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_promo_code(self, event_id: UUID, promo_id: UUID) -> PromoCode:
        promo = await self.db.get(PromoCode, promo_id)
        if not promo or promo.event_id != event_id:
            raise PromoCodeNotFoundError(str(promo_id))
        return promo

    async def find_by_code(self, event_id: UUID, code: str) -> Optional[PromoCode]:
        result = await self.db.execute(
            select(PromoCode).where(
                PromoCode.event_id == event_id,
                PromoCode.code == sanitize_promo_code(code),
            )
        )
        return result.scalar_one_or_none()

    async def create_promo_code(self, event_id: UUID, data: PromoCodeCreate, user: User) -> PromoCode:
        """
        Create a promo code for an event.

        Raises:
            DuplicateResourceError: If the event already has this code
            TicketTypeNotFoundError: If a restricted ticket type is not part of the event
        """
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)

        if await self.find_by_code(event.id, data.code):
            raise DuplicateResourceError(f"Promo code {data.code} already exists for this event", field="code")

        applicable = await self._check_ticket_types(event.id, data.applicable_ticket_types)

        values = data.model_dump(exclude={"applicable_ticket_types"})
        promo = PromoCode(event_id=event.id, current_uses=0, applicable_ticket_types=applicable, **values)
        self.db.add(promo)
        await self.db.commit()
        await self.db.refresh(promo)

        logger.info(f"Created promo code {promo.code} for event {event.id}")
        return promo

    async def update_promo_code(
        self,
        event_id: UUID,
        promo_id: UUID,
        data: PromoCodeUpdate,
        user: User
    ) -> PromoCode:
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)
        promo = await self.get_promo_code(event.id, promo_id)

        updates = data.model_dump(exclude_unset=True)
        if "applicable_ticket_types" in updates:
            updates["applicable_ticket_types"] = await self._check_ticket_types(
                event.id, updates["applicable_ticket_types"] or []
            )

        discount_type = updates.get("discount_type") or promo.discount_type
        discount_amount = updates.get("discount_amount", promo.discount_amount)
        if getattr(discount_type, "value", discount_type) == "percentage" and discount_amount > 100:
            raise ValidationError(
                "Percentage discount cannot exceed 100",
                field_errors={"discount_amount": ["must be at most 100"]}
            )

        for field, value in updates.items():
            if value is None and field in ("discount_type", "discount_amount", "max_uses_per_user",
                                           "min_tickets", "min_purchase_amount", "active"):
                continue
            setattr(promo, field, value)

        await self.db.commit()
        await self.db.refresh(promo)
        return promo

    async def delete_promo_code(self, event_id: UUID, promo_id: UUID, user: User) -> None:
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)
        promo = await self.get_promo_code(event.id, promo_id)
        await self.db.delete(promo)
        await self.db.commit()

    async def paid_uses(self, promo: PromoCode, user_id: UUID) -> int:
        """Paid orders by ``user_id`` that used ``promo``."""
        result = await self.db.execute(
            select(func.count(Order.id)).where(
                Order.promo_code_id == promo.id,
                Order.user_id == user_id,
                Order.status == OrderStatus.PAID,
            )
        )
        return result.scalar() or 0

    async def user_uses(self, promo: PromoCode, user_id: Optional[UUID]) -> int:
        """Paid orders plus unexpired open checkouts by ``user_id`` that carry ``promo``."""
        if user_id is None:
            return 0
        held = await self.db.execute(
            select(func.count(CheckoutSession.id)).where(
                CheckoutSession.promo_code_id == promo.id,
                CheckoutSession.user_id == user_id,
                CheckoutSession.status == CheckoutSessionStatus.OPEN,
                CheckoutSession.expires_at > utcnow(),
            )
        )
        return await self.paid_uses(promo, user_id) + (held.scalar() or 0)

    async def price_cart(self, event_id: UUID, cart_items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Attach unit price and subtotal to ``[{ticket_type_id, quantity}]`` items."""
        priced = []
        for item in cart_items:
            ticket_type = await self.db.get(TicketType, item["ticket_type_id"])
            if not ticket_type or ticket_type.event_id != event_id:
                raise TicketTypeNotFoundError(str(item["ticket_type_id"]))
            quantity = int(item["quantity"])
            priced.append({
                "ticket_type_id": str(ticket_type.id),
                "ticket_type_name": ticket_type.name,
                "quantity": quantity,
                "unit_price": ticket_type.price,
                "subtotal": ticket_type.price * quantity,
            })
        return priced

    async def evaluate(
        self,
        event_id: UUID,
        code: str,
        priced_items: List[Dict[str, Any]],
        user_id: Optional[UUID] = None,
        currency: str = "GBP"
    ) -> PromoEvaluation:
        """Run the promo rules for a priced cart."""
        promo = await self.find_by_code(event_id, code)
        if promo is None:
            return evaluate_promo(None, priced_items)
        uses = await self.user_uses(promo, user_id)
        return evaluate_promo(promo, priced_items, user_uses=uses, currency=currency)

    async def validate_promo(
        self,
        event_id: UUID,
        code: str,
        cart_items: Iterable[Dict[str, Any]],
        user_id: Optional[UUID] = None
    ) -> Dict[str, Any]:
        """
        Check a promo code against a cart without applying it.

        Returns:
            ``{valid, error_code, message, discount, subtotal, currency, promo}``
        """
        event = await self.events.get_event(event_id)
        priced = await self.price_cart(event.id, cart_items)
        evaluation = await self.evaluate(event.id, code, priced, user_id, event.currency)

        result = evaluation.to_dict()
        result["subtotal"] = sum(item["subtotal"] for item in priced)
        result["currency"] = event.currency
        result["promo"] = None
        if evaluation.valid:
            promo = await self.find_by_code(event.id, code)
            result["promo"] = {
                "code": promo.code,
                "discount_type": promo.discount_type.value,
                "discount_amount": promo.discount_amount,
                "description": promo.description,
            }
        return result

    async def increment_use(self, promo_id: UUID) -> None:
        """
        Count one more use, respecting ``max_uses``. Does not commit.

        Raises:
            PromoCodeError: If the last use was taken concurrently
        """
        result = await self.db.execute(
            update(PromoCode)
            .where(
                PromoCode.id == promo_id,
                or_(PromoCode.max_uses.is_(None), PromoCode.current_uses < PromoCode.max_uses),
            )
            .values(current_uses=PromoCode.current_uses + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise PromoCodeError(PromoReason.MAX_USES_REACHED, "Promo code has reached maximum uses")

    async def _check_ticket_types(self, event_id: UUID, ticket_type_ids: List[UUID]) -> List[str]:
        if not ticket_type_ids:
            return []
        result = await self.db.execute(
            select(TicketType.id).where(
                TicketType.event_id == event_id,
                TicketType.id.in_(list(ticket_type_ids)),
            )
        )
        found = {row[0] for row in result.all()}
        for ticket_type_id in ticket_type_ids:
            if ticket_type_id not in found:
                raise TicketTypeNotFoundError(str(ticket_type_id))
        return [str(ticket_type_id) for ticket_type_id in ticket_type_ids]
