"""
Checkout service: reservation holds, order creation and ticket issuing.

A checkout runs in two steps. ``start_checkout`` prices the cart, reserves
the tickets and persists a ``CheckoutSession``; ``complete_checkout`` turns
that session (and nothing sent by the client) into a paid order.
"""

import logging
import uuid
from collections import OrderedDict
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheInvalidator
from ..config import get_settings
from ..models import (
    CheckoutSession,
    CheckoutSessionStatus,
    EventStatus,
    Fee,
    Order,
    OrderItem,
    OrderStatus,
    PromoCode,
    Ticket,
    TicketStatus,
    TicketType,
    User,
)
from ..models.base import as_aware, utcnow
from ..utils.currency import calculate_tax, round_half_up
from ..utils.exceptions import (
    CheckoutExpiredError,
    CheckoutSessionNotFoundError,
    ConcurrencyError,
    InsufficientCapacityError,
    InvalidStateTransitionError,
    ParlomoError,
    PromoCodeError,
    TicketTypeNotFoundError,
    ValidationError,
)
from ..utils.fees import calculate_buyer_fees, calculate_service_charges
from ..utils.logging_config import log_business_event
from ..utils.promo_rules import PromoReason
from ..utils.qr_tokens import generate_qr_payload
from ..utils.ticket_codes import format_order_number, generate_barcode_number, generate_ticket_codes, order_number_prefix
from .promo_code_service import PromoCodeService
from .public_event_service import PublicEventService
from .ticket_type_service import TicketTypeService

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 3


def merge_cart_items(cart_items: Iterable[Dict[str, Any]]) -> "OrderedDict[UUID, int]":
    """Sum quantities of repeated ticket types, keeping first-seen order."""
    merged: "OrderedDict[UUID, int]" = OrderedDict()
    for item in cart_items:
        ticket_type_id = UUID(str(item["ticket_type_id"]))
        merged[ticket_type_id] = merged.get(ticket_type_id, 0) + int(item["quantity"])
    return merged


def allocate_discount(items: List[Dict[str, Any]], discount: int, applicable_ids: Iterable[str]) -> List[int]:
    """
    Split an order discount across its lines in proportion to their subtotals.

    Only lines the promo applies to share the discount; the last of them
    absorbs the rounding remainder so the parts always add up.
    """
    applicable = {str(type_id) for type_id in applicable_ids}
    eligible = [
        index for index, item in enumerate(items)
        if not applicable or str(item["ticket_type_id"]) in applicable
    ]
    shares = [0] * len(items)
    base = sum(items[index]["subtotal"] for index in eligible)
    if discount <= 0 or base <= 0:
        return shares

    remaining = discount
    for position, index in enumerate(eligible):
        if position == len(eligible) - 1:
            share = remaining
        else:
            share = round_half_up(Decimal(discount) * items[index]["subtotal"] / base)
        share = min(share, items[index]["subtotal"], remaining)
        shares[index] = share
        remaining -= share
    return shares


def is_order_number_conflict(exc: IntegrityError) -> bool:
    return "order_number" in str(getattr(exc, "orig", exc)).lower()


def serialize_session(checkout: CheckoutSession) -> Dict[str, Any]:
    return {
        "session_id": checkout.id,
        "event_id": checkout.event_id,
        "status": checkout.status.value,
        "items": checkout.items,
        "subtotal": checkout.subtotal,
        "discount": checkout.discount,
        "promo_code": checkout.promo_code,
        "promo_message": checkout.promo_message,
        "fees": checkout.fees,
        "fee_breakdown": checkout.fee_breakdown,
        "tax": checkout.tax,
        "total": checkout.total,
        "currency": checkout.currency,
        "expires_at": checkout.expires_at,
    }


class CheckoutService:
    """Service class for the checkout flow."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()
        self.events = PublicEventService(db)
        self.ticket_types = TicketTypeService(db)
        self.promos = PromoCodeService(db)

    async def start_checkout(
        self,
        event_id: UUID,
        cart_items: List[Dict[str, Any]],
        user: User,
        promo_code: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Reserve the cart and open a checkout session.

        Args:
            event_id: Event being purchased
            cart_items: ``[{ticket_type_id, quantity}]``; repeats are merged
            user: Buyer
            promo_code: Optional code; an unusable code does not fail checkout

        Returns:
            Serialized checkout session

        Raises:
            ValidationError: Empty cart, event not on sale, per-order limits
            TicketTypeNotFoundError: Unknown ticket type
            InsufficientCapacityError: Not enough tickets left
        """
        if not cart_items:
            raise ValidationError("Cart is empty", field_errors={"cart_items": ["at least one item required"]})

        merged = merge_cart_items(cart_items)
        ticket_count = sum(merged.values())
        if ticket_count > self.settings.max_tickets_per_order:
            raise ValidationError(
                f"Maximum {self.settings.max_tickets_per_order} tickets per order",
                details={"requested": ticket_count, "max": self.settings.max_tickets_per_order}
            )

        event = await self.events.get_event(event_id)
        if event.status != EventStatus.PUBLISHED:
            raise ValidationError("Tickets for this event are not on sale")
        if event.is_past:
            raise ValidationError("This event has already taken place")

        user_id = user.id
        priced: List[Dict[str, Any]] = []
        try:
            for ticket_type_id, quantity in merged.items():
                ticket_type = await self.db.get(TicketType, ticket_type_id)
                if not ticket_type:
                    raise TicketTypeNotFoundError(str(ticket_type_id))
                self._check_purchasable(ticket_type, event.id, quantity)

                await self.ticket_types.reserve(ticket_type.id, quantity)
                priced.append({
                    "ticket_type_id": str(ticket_type.id),
                    "ticket_type_name": ticket_type.name,
                    "quantity": quantity,
                    "unit_price": ticket_type.price,
                    "subtotal": ticket_type.price * quantity,
                })

            if event.global_capacity:
                await self._check_global_capacity(event.id, event.global_capacity, ticket_count)

            subtotal = sum(item["subtotal"] for item in priced)
            discount = 0
            promo_id = None
            applied_code = None
            promo_message = None
            if promo_code:
                evaluation = await self.promos.evaluate(event.id, promo_code, priced, user_id, event.currency)
                promo_message = evaluation.message
                if evaluation.valid:
                    promo = await self.promos.find_by_code(event.id, promo_code)
                    promo_id = promo.id
                    applied_code = promo.code
                    discount = evaluation.discount

            discounted = subtotal - discount
            active_fees = await self.db.execute(
                select(Fee).where(Fee.active.is_(True)).order_by(Fee.display_order)
            )
            fees = calculate_buyer_fees(discounted, ticket_count, list(active_fees.scalars().all()))
            fees.extend(calculate_service_charges(event.service_charges, discounted, ticket_count))
            tax = calculate_tax(discounted, event.tax_rate)

            checkout = CheckoutSession(
                event_id=event.id,
                user_id=user_id,
                status=CheckoutSessionStatus.OPEN,
                items=priced,
                subtotal=subtotal,
                discount=discount,
                fees=fees.total_fees,
                fee_breakdown=fees.to_list(),
                tax=tax,
                total=discounted + fees.total_fees + tax,
                currency=event.currency,
                promo_code_id=promo_id,
                promo_code=applied_code,
                promo_message=promo_message,
                expires_at=utcnow() + timedelta(minutes=self.settings.checkout_hold_minutes),
            )
            self.db.add(checkout)
            await self.db.commit()
        except ParlomoError:
            # Undo every reservation made by this request
            await self.db.rollback()
            raise

        await CacheInvalidator.invalidate_ticketing_caches(str(event_id))
        logger.info(
            f"Checkout {checkout.id} opened for user {user_id}: "
            f"{ticket_count} tickets, total {checkout.total} {checkout.currency}"
        )
        return serialize_session(checkout)

    async def get_session(self, session_id: UUID, user: User) -> CheckoutSession:
        checkout = await self.db.get(CheckoutSession, session_id)
        if not checkout or (checkout.user_id != user.id and not user.is_admin):
            raise CheckoutSessionNotFoundError(str(session_id))
        return checkout

    async def complete_checkout(
        self,
        session_id: UUID,
        buyer_info: Dict[str, Any],
        user: User,
        payment_intent_id: Optional[str] = None,
        payment_method: str = "card"
    ) -> Dict[str, Any]:
        """
        Turn an open checkout session into a paid order with tickets.

        Everything happens in one transaction; if it fails the session's
        reservations are released and the session is marked failed.

        Returns:
            ``{message, order, ticket_count}``

        Raises:
            CheckoutSessionNotFoundError: Unknown session or someone else's
            InvalidStateTransitionError: Session no longer open, or the event or
                one of its ticket types was withdrawn
            PromoCodeError: Buyer reached the per-user limit since the session opened
            CheckoutExpiredError: Hold period elapsed
        """
        user_id = user.id
        checkout = await self.get_session(session_id, user)

        if checkout.status != CheckoutSessionStatus.OPEN:
            raise InvalidStateTransitionError(
                "checkout_session", str(checkout.id), checkout.status.value,
                CheckoutSessionStatus.COMPLETED.value,
                message=f"Checkout session is {checkout.status.value}"
            )
        if checkout.is_expired:
            await self._close(checkout, CheckoutSessionStatus.EXPIRED)
            raise CheckoutExpiredError(str(checkout.id))
        await self._check_still_on_sale(checkout)

        order = None
        for attempt in range(ORDER_NUMBER_ATTEMPTS):
            if not await self._claim(checkout):
                await self.db.rollback()
                await self.db.refresh(checkout)
                if checkout.status == CheckoutSessionStatus.EXPIRED:
                    raise CheckoutExpiredError(str(checkout.id))
                raise InvalidStateTransitionError(
                    "checkout_session", str(checkout.id), checkout.status.value,
                    CheckoutSessionStatus.COMPLETED.value,
                    message=f"Checkout session is {checkout.status.value}"
                )
            try:
                order = await self._fulfil(checkout, buyer_info, user_id, payment_intent_id, payment_method, attempt)
                await self.db.commit()
                break
            except IntegrityError as e:
                await self.db.rollback()
                await self.db.refresh(checkout)
                logger.warning(f"Order creation conflict for checkout {checkout.id} (attempt {attempt + 1}): {e}")
                if not is_order_number_conflict(e):
                    await self._close(checkout, CheckoutSessionStatus.FAILED)
                    raise ConcurrencyError("Ticket availability changed while completing the order")
                if attempt == ORDER_NUMBER_ATTEMPTS - 1:
                    await self._close(checkout, CheckoutSessionStatus.FAILED)
                    raise ConcurrencyError("Could not allocate an order number, please retry")
            except ParlomoError:
                await self.db.rollback()
                await self.db.refresh(checkout)
                await self._close(checkout, CheckoutSessionStatus.FAILED)
                raise

        await CacheInvalidator.invalidate_ticketing_caches(str(checkout.event_id))

        try:
            from ..tasks.notification_tasks import send_order_confirmation_task
            send_order_confirmation_task.delay(str(order.id))
        except Exception as e:
            logger.warning(f"Failed to queue confirmation email for order {order.id}: {e}")

        log_business_event(
            "order_paid",
            {
                "order_id": str(order.id),
                "order_number": order.order_number,
                "event_id": str(order.event_id),
                "total": order.total,
                "currency": order.currency,
            },
            str(user_id)
        )
        return {
            "message": "Order completed successfully",
            "order": order,
            "ticket_count": checkout.ticket_count,
        }

    async def cancel_checkout(self, session_id: UUID, user: User) -> Dict[str, Any]:
        """Abandon an open session and give its tickets back."""
        checkout = await self.get_session(session_id, user)
        if checkout.status != CheckoutSessionStatus.OPEN:
            raise InvalidStateTransitionError(
                "checkout_session", str(checkout.id), checkout.status.value,
                CheckoutSessionStatus.CANCELLED.value,
                message=f"Checkout session is {checkout.status.value}"
            )
        await self._close(checkout, CheckoutSessionStatus.CANCELLED)
        return serialize_session(checkout)

    async def expire_checkout_sessions(self) -> int:
        """
        Release reservations held by open sessions past their expiry.

        Returns:
            Number of sessions expired
        """
        result = await self.db.execute(
            select(CheckoutSession)
            .where(
                CheckoutSession.status == CheckoutSessionStatus.OPEN,
                CheckoutSession.expires_at <= utcnow(),
            )
            .with_for_update(skip_locked=True)
        )
        sessions = list(result.scalars().all())
        event_ids = set()
        for checkout in sessions:
            for item in checkout.items:
                await self.ticket_types.release(UUID(item["ticket_type_id"]), int(item["quantity"]))
            checkout.status = CheckoutSessionStatus.EXPIRED
            event_ids.add(str(checkout.event_id))

        await self.db.commit()
        for event_id in event_ids:
            await CacheInvalidator.invalidate_ticketing_caches(event_id)

        if sessions:
            logger.info(f"Expired {len(sessions)} checkout sessions")
        return len(sessions)

    async def _check_still_on_sale(self, checkout: CheckoutSession) -> None:
        """Fail the session if its event or ticket types were withdrawn after it opened."""
        event = await self.events.get_event(checkout.event_id)
        reason = None
        if event.status != EventStatus.PUBLISHED:
            reason = "Tickets for this event are no longer on sale"
        elif event.is_past:
            reason = "This event has already taken place"
        else:
            for item in checkout.items:
                ticket_type = await self.db.get(TicketType, UUID(item["ticket_type_id"]))
                if not ticket_type or not ticket_type.active:
                    reason = f"{item['ticket_type_name']} tickets are no longer available"
                    break

        if reason:
            await self._close(checkout, CheckoutSessionStatus.FAILED)
            raise InvalidStateTransitionError(
                "checkout_session", str(checkout.id), CheckoutSessionStatus.OPEN.value,
                CheckoutSessionStatus.COMPLETED.value, message=reason
            )

    async def _claim(self, checkout: CheckoutSession) -> bool:
        """
        Move the session from open to completed inside the current transaction.

        The row stays locked until commit, so the expiry sweep (which skips
        locked rows) cannot release the hold while the order is written.
        """
        result = await self.db.execute(
            update(CheckoutSession)
            .where(CheckoutSession.id == checkout.id, CheckoutSession.status == CheckoutSessionStatus.OPEN)
            .values(status=CheckoutSessionStatus.COMPLETED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _check_purchasable(self, ticket_type: TicketType, event_id: UUID, quantity: int) -> None:
        if ticket_type.event_id != event_id:
            raise ValidationError(
                f"Ticket type {ticket_type.name} does not belong to this event",
                field_errors={"ticket_type_id": ["wrong event"]}
            )
        if not ticket_type.active:
            raise ValidationError(f"{ticket_type.name} tickets are not available")

        now = utcnow()
        if ticket_type.sales_start and as_aware(ticket_type.sales_start) > now:
            raise ValidationError(f"Sales for {ticket_type.name} have not started yet")
        if ticket_type.sales_end and as_aware(ticket_type.sales_end) < now:
            raise ValidationError(f"Sales for {ticket_type.name} have ended")

        if quantity < ticket_type.min_per_order:
            raise ValidationError(
                f"Minimum {ticket_type.min_per_order} {ticket_type.name} tickets per order",
                details={"ticket_type_id": str(ticket_type.id), "min_per_order": ticket_type.min_per_order}
            )
        if quantity > ticket_type.max_per_order:
            raise ValidationError(
                f"Maximum {ticket_type.max_per_order} {ticket_type.name} tickets per order",
                details={"ticket_type_id": str(ticket_type.id), "max_per_order": ticket_type.max_per_order}
            )

    async def _check_global_capacity(self, event_id: UUID, global_capacity: int, requested: int) -> None:
        """Event-wide cap across all ticket types (reservations of this request included)."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(TicketType.sold + TicketType.reserved), 0))
            .where(TicketType.event_id == event_id)
        )
        taken = int(result.scalar() or 0)
        if taken > global_capacity:
            raise InsufficientCapacityError(
                requested=requested,
                available=max(0, global_capacity - (taken - requested)),
            )

    async def _next_order_number(self, offset: int = 0) -> str:
        prefix = order_number_prefix(utcnow())
        result = await self.db.execute(
            select(func.count(Order.id)).where(Order.order_number.like(f"{prefix}%"))
        )
        count = result.scalar() or 0
        return format_order_number(utcnow().year, count + 1 + offset)

    async def _unique_ticket_codes(self, count: int) -> List[str]:
        codes = generate_ticket_codes(count)
        while True:
            result = await self.db.execute(select(Ticket.code).where(Ticket.code.in_(codes)))
            taken = {row[0] for row in result.all()}
            if not taken:
                return codes
            kept = [code for code in codes if code not in taken]
            codes = kept + generate_ticket_codes(count - len(kept), existing=set(codes))

    async def _fulfil(
        self,
        checkout: CheckoutSession,
        buyer_info: Dict[str, Any],
        user_id: UUID,
        payment_intent_id: Optional[str],
        payment_method: str,
        attempt: int
    ) -> Order:
        """Add the order, its lines and tickets to the session; the caller commits."""
        items = list(checkout.items)
        applicable_ids: List[str] = []
        if checkout.promo_code_id:
            promo = await self.db.get(PromoCode, checkout.promo_code_id)
            if promo:
                applicable_ids = list(promo.applicable_ticket_types or [])
                if checkout.discount > 0 and promo.max_uses_per_user:
                    if await self.promos.paid_uses(promo, user_id) >= promo.max_uses_per_user:
                        raise PromoCodeError(PromoReason.USER_LIMIT_REACHED, "You have already used this promo code")
        shares = allocate_discount(items, checkout.discount, applicable_ids)

        now = utcnow()
        order = Order(
            id=uuid.uuid4(),
            order_number=await self._next_order_number(attempt),
            event_id=checkout.event_id,
            user_id=user_id,
            status=OrderStatus.PAID,
            subtotal=checkout.subtotal,
            discount=checkout.discount,
            fees=checkout.fees,
            tax=checkout.tax,
            total=checkout.total,
            currency=checkout.currency,
            payment_intent_id=payment_intent_id,
            payment_method=payment_method,
            customer_email=str(buyer_info["email"]).lower(),
            customer_name=f"{buyer_info['first_name']} {buyer_info['last_name']}".strip(),
            customer_phone=buyer_info.get("phone"),
            promo_code_id=checkout.promo_code_id,
            promo_code=checkout.promo_code,
            paid_at=now,
            metadata_={
                "checkout_session_id": str(checkout.id),
                "fee_breakdown": checkout.fee_breakdown,
            },
        )
        for item, share in zip(items, shares):
            order.items.append(OrderItem(
                ticket_type_id=UUID(item["ticket_type_id"]),
                ticket_type_name=item["ticket_type_name"],
                quantity=item["quantity"],
                unit_price=item["unit_price"],
                subtotal=item["subtotal"],
                discount=share,
                total=item["subtotal"] - share,
            ))
        self.db.add(order)

        codes = await self._unique_ticket_codes(checkout.ticket_count)
        code_index = 0
        for item in items:
            ticket_type = await self.db.get(TicketType, UUID(item["ticket_type_id"]))
            for _ in range(int(item["quantity"])):
                ticket_id = uuid.uuid4()
                code = codes[code_index]
                code_index += 1
                self.db.add(Ticket(
                    id=ticket_id,
                    order_id=order.id,
                    event_id=checkout.event_id,
                    ticket_type_id=ticket_type.id if ticket_type else None,
                    code=code,
                    qr_payload=generate_qr_payload(
                        str(ticket_id), code, str(checkout.event_id), item["ticket_type_id"], str(order.id)
                    ),
                    barcode=generate_barcode_number(),
                    status=TicketStatus.VALID,
                    attendee_name=order.customer_name,
                    attendee_email=order.customer_email,
                    seat_section=ticket_type.seat_section if ticket_type else None,
                    seat_row=ticket_type.seat_row if ticket_type else None,
                ))
            await self.ticket_types.mark_sold(UUID(item["ticket_type_id"]), int(item["quantity"]))

        if checkout.promo_code_id and checkout.discount > 0:
            await self.promos.increment_use(checkout.promo_code_id)

        checkout.status = CheckoutSessionStatus.COMPLETED
        checkout.order_id = order.id
        await self.db.flush()
        return order

    async def _close(self, checkout: CheckoutSession, status: CheckoutSessionStatus) -> None:
        """Release the session's reservations and move it to ``status`` if it is still open."""
        result = await self.db.execute(
            update(CheckoutSession)
            .where(CheckoutSession.id == checkout.id, CheckoutSession.status == CheckoutSessionStatus.OPEN)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            for item in checkout.items:
                await self.ticket_types.release(UUID(item["ticket_type_id"]), int(item["quantity"]))
        await self.db.commit()
        await self.db.refresh(checkout)
        await CacheInvalidator.invalidate_ticketing_caches(str(checkout.event_id))
        logger.info(f"Checkout {checkout.id} closed as {status.value}")
