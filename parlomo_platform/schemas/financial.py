"""
Refund and settlement request schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.financial_request import (
    PaymentMethod,
    RefundRequestStatus,
    RefundRequestType,
    SettlementRequestStatus,
)
from .common import Pagination


class RefundRequestCreate(BaseModel):
    event_id: UUID
    type: RefundRequestType
    reason: str = Field(..., min_length=1, max_length=1000)
    description: Optional[str] = Field(None, max_length=5000)
    order_ids: List[UUID] = []

    @model_validator(mode="after")
    def check_orders(self):
        if self.type == RefundRequestType.SINGLE_ORDER and len(self.order_ids) != 1:
            raise ValueError("A single order refund needs exactly one order id")
        if self.type == RefundRequestType.BULK_REFUND and not self.order_ids:
            raise ValueError("A bulk refund needs at least one order id")
        return self


class RefundRequestUpdate(BaseModel):
    """Generic status change; routed through the same transitions as approve/reject/process."""
    status: Optional[RefundRequestStatus] = None
    admin_notes: Optional[str] = Field(None, max_length=5000)
    rejection_reason: Optional[str] = Field(None, max_length=1000)


class AdminDecision(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=5000)


class RejectionRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)
    admin_notes: Optional[str] = Field(None, max_length=5000)


class RefundRequestResponse(BaseModel):
    id: UUID
    organizer_id: UUID
    event_id: UUID
    event_title: str
    type: RefundRequestType
    order_ids: List[str] = []
    affected_orders_count: int
    total_refund_amount: int
    currency: str
    reason: str
    description: Optional[str] = None
    status: RefundRequestStatus
    requested_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    refunds_processed: int = 0
    refunds_failed: int = 0
    processing_errors: List[Dict[str, Any]] = []

    model_config = ConfigDict(from_attributes=True)


class RefundRequestListResponse(BaseModel):
    requests: List[RefundRequestResponse]
    pagination: Pagination


class SettlementRequestCreate(BaseModel):
    event_id: UUID
    amount: Optional[int] = Field(None, gt=0, description="Minor units; defaults to the full payout")
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    payment_details: Dict[str, Any] = {}


class SettlementRequestUpdate(BaseModel):
    status: Optional[SettlementRequestStatus] = None
    admin_notes: Optional[str] = Field(None, max_length=5000)
    rejection_reason: Optional[str] = Field(None, max_length=1000)
    transaction_reference: Optional[str] = Field(None, max_length=200)


class MarkPaidRequest(BaseModel):
    transaction_reference: str = Field(..., min_length=1, max_length=200)


class SettlementRequestResponse(BaseModel):
    id: UUID
    organizer_id: UUID
    event_id: UUID
    event_title: str
    amount: int
    currency: str
    total_sales: int
    platform_fees: int
    processing_fees: int
    status: SettlementRequestStatus
    payment_method: PaymentMethod
    payment_details: Dict[str, Any] = {}
    requested_at: datetime
    processed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    transaction_reference: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SettlementRequestListResponse(BaseModel):
    requests: List[SettlementRequestResponse]
    pagination: Pagination
