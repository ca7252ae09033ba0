"""
Refund and settlement requests raised by organizers and decided by admins.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import JSON, CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow
from ..utils.exceptions import InvalidStateTransitionError, ValidationError


class RefundRequestType(enum.Enum):
    EVENT_CANCELLATION = "EVENT_CANCELLATION"
    BULK_REFUND = "BULK_REFUND"
    SINGLE_ORDER = "SINGLE_ORDER"


class RefundRequestStatus(enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PROCESSED = "PROCESSED"


class SettlementRequestStatus(enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class PaymentMethod(enum.Enum):
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    STRIPE = "stripe"


REFUND_TRANSITIONS: Dict[RefundRequestStatus, Set[RefundRequestStatus]] = {
    RefundRequestStatus.PENDING: {RefundRequestStatus.APPROVED, RefundRequestStatus.REJECTED},
    RefundRequestStatus.APPROVED: {RefundRequestStatus.PROCESSED},
    RefundRequestStatus.REJECTED: set(),
    RefundRequestStatus.PROCESSED: set(),
}

SETTLEMENT_TRANSITIONS: Dict[SettlementRequestStatus, Set[SettlementRequestStatus]] = {
    SettlementRequestStatus.PENDING: {SettlementRequestStatus.APPROVED, SettlementRequestStatus.REJECTED},
    SettlementRequestStatus.APPROVED: {SettlementRequestStatus.PAID, SettlementRequestStatus.REJECTED},
    SettlementRequestStatus.REJECTED: set(),
    SettlementRequestStatus.PAID: set(),
}


class FinancialRequestMixin:
    """Columns shared by refund and settlement requests."""

    event_title: Mapped[str] = mapped_column(String(200), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")

    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    admin_notes: Mapped[str] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str] = mapped_column(Text, nullable=True)
    decided_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)


class RefundRequest(FinancialRequestMixin, Base):
    """Organizer request to refund one, several or all orders of an event."""

    __tablename__ = "refund_requests"

    organizer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    type: Mapped[RefundRequestType] = mapped_column(Enum(RefundRequestType), nullable=False)
    order_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    affected_orders_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_refund_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)

    status: Mapped[RefundRequestStatus] = mapped_column(
        Enum(RefundRequestStatus),
        default=RefundRequestStatus.PENDING,
        nullable=False,
        index=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    refunds_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    refunds_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_errors: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint("total_refund_amount >= 0", name="ck_refund_requests_amount_non_negative"),
    )

    def _transition(self, target: RefundRequestStatus) -> None:
        if target not in REFUND_TRANSITIONS[self.status]:
            raise InvalidStateTransitionError(
                "refund_request", str(self.id), self.status.value, target.value
            )
        self.status = target

    def approve(self, admin_notes: Optional[str] = None, admin_id: Optional[uuid.UUID] = None) -> None:
        self._transition(RefundRequestStatus.APPROVED)
        if admin_notes:
            self.admin_notes = admin_notes
        self.decided_by = admin_id
        self.processed_at = utcnow()

    def reject(self, reason: str, admin_notes: Optional[str] = None, admin_id: Optional[uuid.UUID] = None) -> None:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required", field_errors={"reason": ["required"]})
        self._transition(RefundRequestStatus.REJECTED)
        self.rejection_reason = reason.strip()
        if admin_notes:
            self.admin_notes = admin_notes
        self.decided_by = admin_id
        self.processed_at = utcnow()

    def mark_as_processed(self, success_count: int, fail_count: int, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        self._transition(RefundRequestStatus.PROCESSED)
        self.refunds_processed = success_count
        self.refunds_failed = fail_count
        self.processing_errors = list(errors or [])
        self.completed_at = utcnow()

    def __repr__(self) -> str:
        return f"<RefundRequest(id={self.id}, type={self.type.value}, status={self.status.value})>"


class SettlementRequest(FinancialRequestMixin, Base):
    """Organizer request to be paid out the net revenue of an event."""

    __tablename__ = "settlement_requests"

    organizer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    platform_fees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_fees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[SettlementRequestStatus] = mapped_column(
        Enum(SettlementRequestStatus),
        default=SettlementRequestStatus.PENDING,
        nullable=False,
        index=True
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod),
        default=PaymentMethod.BANK_TRANSFER,
        nullable=False
    )
    payment_details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    transaction_reference: Mapped[str] = mapped_column(String(200), nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlement_requests_amount_positive"),
    )

    @property
    def is_open(self) -> bool:
        return self.status in (SettlementRequestStatus.PENDING, SettlementRequestStatus.APPROVED)

    def _transition(self, target: SettlementRequestStatus) -> None:
        if target not in SETTLEMENT_TRANSITIONS[self.status]:
            raise InvalidStateTransitionError(
                "settlement_request", str(self.id), self.status.value, target.value
            )
        self.status = target

    def approve(self, admin_notes: Optional[str] = None, admin_id: Optional[uuid.UUID] = None) -> None:
        self._transition(SettlementRequestStatus.APPROVED)
        if admin_notes:
            self.admin_notes = admin_notes
        self.decided_by = admin_id
        self.processed_at = utcnow()

    def reject(self, reason: str, admin_notes: Optional[str] = None, admin_id: Optional[uuid.UUID] = None) -> None:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required", field_errors={"reason": ["required"]})
        self._transition(SettlementRequestStatus.REJECTED)
        self.rejection_reason = reason.strip()
        if admin_notes:
            self.admin_notes = admin_notes
        self.decided_by = admin_id
        self.processed_at = utcnow()

    def mark_as_paid(self, transaction_reference: str) -> None:
        if not transaction_reference or not transaction_reference.strip():
            raise ValidationError(
                "A transaction reference is required",
                field_errors={"transaction_reference": ["required"]}
            )
        self._transition(SettlementRequestStatus.PAID)
        self.transaction_reference = transaction_reference.strip()
        self.paid_at = utcnow()

    def __repr__(self) -> str:
        return f"<SettlementRequest(id={self.id}, amount={self.amount}, status={self.status.value})>"
