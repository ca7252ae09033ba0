"""
Public event schemas for request/response validation.

Event forms arrive either flat (``venue_name``, ``city``, ``organizer_email``)
or nested (``venue``, ``location``, ``organizer`` objects); both are folded
into the flat column layout before validation.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.public_event import EventStatus, EventType
from .common import Pagination


class ServiceCharge(BaseModel):
    """Organizer-defined charge added to every order for the event."""
    title: str = Field(..., min_length=1, max_length=100)
    type: Literal["per_ticket", "per_cart"] = "per_ticket"
    amount_type: Literal["fixed_price", "percentage"] = "fixed_price"
    amount: float = Field(..., ge=0, description="Minor units, or percent when amount_type is percentage")


def parse_age_restriction(value: Any) -> int:
    """``"all_ages"`` / ``""`` -> 0, ``"18+"`` -> 18, numbers pass through."""
    if value is None or value == "" or value == "all_ages":
        return 0
    if isinstance(value, str):
        match = re.search(r"(\d+)", value)
        return int(match.group(1)) if match else 0
    return int(value)


def flatten_event_form(data: Any) -> Any:
    """Fold nested ``venue`` / ``location`` / ``organizer`` objects into flat fields."""
    if not isinstance(data, dict):
        return data

    flat = dict(data)

    venue = flat.pop("venue", None)
    if isinstance(venue, dict):
        flat.setdefault("venue_name", venue.get("name"))
        flat.setdefault("venue_capacity", venue.get("capacity"))
    elif isinstance(venue, str):
        flat.setdefault("venue_name", venue)

    location = flat.pop("location", None)
    if isinstance(location, dict):
        for key in ("address", "city", "state", "country", "postcode"):
            if location.get(key) is not None:
                flat.setdefault(key, location[key])
        coordinates = location.get("coordinates") or {}
        if coordinates.get("lat") is not None:
            flat.setdefault("latitude", coordinates["lat"])
        if coordinates.get("lng") is not None:
            flat.setdefault("longitude", coordinates["lng"])

    if "venue_address" in flat:
        flat.setdefault("address", flat.pop("venue_address"))

    organizer = flat.pop("organizer", None)
    if isinstance(organizer, dict):
        for key in ("name", "email", "phone", "website", "facebook", "instagram", "whatsapp"):
            if organizer.get(key) is not None:
                flat.setdefault(f"organizer_{key}", organizer[key])

    category = flat.get("category")
    if isinstance(category, dict):
        flat["category"] = category.get("id") or category.get("slug")

    return flat


class PublicEventFields(BaseModel):
    """Fields shared by create and update payloads."""

    description: Optional[str] = None
    category: Optional[str] = Field(None, description="Category ID or slug")
    event_type: Optional[EventType] = None

    end_date: Optional[datetime] = None
    doors_open: Optional[datetime] = None
    timezone: Optional[str] = Field(None, max_length=64)

    venue_name: Optional[str] = Field(None, max_length=200)
    venue_capacity: Optional[int] = Field(None, ge=1)
    address: Optional[str] = Field(None, max_length=300)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    postcode: Optional[str] = Field(None, max_length=20)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    organizer_name: Optional[str] = Field(None, max_length=200)
    organizer_email: Optional[str] = Field(None, max_length=255)
    organizer_phone: Optional[str] = Field(None, max_length=50)
    organizer_website: Optional[str] = Field(None, max_length=500)
    organizer_facebook: Optional[str] = Field(None, max_length=500)
    organizer_instagram: Optional[str] = Field(None, max_length=500)
    organizer_whatsapp: Optional[str] = Field(None, max_length=50)

    global_capacity: Optional[int] = Field(None, ge=1)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    waitlist_enabled: Optional[bool] = None
    seatsio_event_key: Optional[str] = Field(None, max_length=200)

    cover_image: Optional[str] = Field(None, max_length=500)
    gallery_images: Optional[List[str]] = None
    video_url: Optional[str] = Field(None, max_length=500)

    age_restriction: Optional[int] = Field(None, ge=0, le=100)
    refund_policy: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    tax_rate: Optional[float] = Field(None, ge=0, le=100)
    platform_fee_percentage: Optional[float] = Field(None, ge=0, le=100)
    service_charges: Optional[List[ServiceCharge]] = None

    tags: Optional[List[str]] = None
    featured: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def flatten_nested_form(cls, data: Any) -> Any:
        return flatten_event_form(data)

    @field_validator("age_restriction", mode="before")
    @classmethod
    def coerce_age_restriction(cls, value: Union[str, int, None]) -> Optional[int]:
        if value is None:
            return None
        return parse_age_restriction(value)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class PublicEventCreate(PublicEventFields):
    title: str = Field(..., min_length=1, max_length=200)
    start_date: datetime

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date must be after start date")
        return self


class PublicEventUpdate(PublicEventFields):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    start_date: Optional[datetime] = None


class CategorySummary(BaseModel):
    id: UUID
    name: str
    slug: str
    icon: str

    model_config = ConfigDict(from_attributes=True)


class PublicEventResponse(BaseModel):
    id: UUID
    title: str
    slug: str
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    category: Optional[CategorySummary] = None
    organizer_id: UUID
    organizer_name: Optional[str] = None
    organizer_email: Optional[str] = None
    organizer_phone: Optional[str] = None
    organizer_website: Optional[str] = None
    organizer_facebook: Optional[str] = None
    organizer_instagram: Optional[str] = None
    organizer_whatsapp: Optional[str] = None

    status: EventStatus
    event_type: EventType
    start_date: datetime
    end_date: Optional[datetime] = None
    doors_open: Optional[datetime] = None
    timezone: str

    venue_name: Optional[str] = None
    venue_capacity: Optional[int] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postcode: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    global_capacity: Optional[int] = None
    currency: str
    waitlist_enabled: bool
    seatsio_event_key: Optional[str] = None

    cover_image: Optional[str] = None
    gallery_images: List[str] = []
    video_url: Optional[str] = None

    age_restriction: int
    refund_policy: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    tax_rate: float
    platform_fee_percentage: Optional[float] = None
    service_charges: List[Dict[str, Any]] = []

    tags: List[str] = []
    featured: bool
    published_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    is_upcoming: bool
    is_past: bool
    is_live: bool

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PublicEventListResponse(BaseModel):
    events: List[PublicEventResponse]
    pagination: Pagination


class EventCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class EventStatsResponse(BaseModel):
    event_id: UUID
    tickets_sold: int
    total_revenue: int
    total_orders: int
    total_attendees: int
    checked_in_count: int
    remaining_capacity: int
    ticket_type_breakdown: Dict[str, int]
    revenue_by_ticket_type: Dict[str, int]
    promo_code_usage_count: int
    promo_code_discount_total: int
    currency: str


class EventOverviewResponse(BaseModel):
    """Platform-wide counts by status and category."""
    total: int
    draft: int
    published: int
    cancelled: int
    completed: int
    by_category: Dict[str, int]
