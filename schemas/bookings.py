from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.booking import BOOKING_STATUSES, PAYMENT_STATUSES
from schemas.common import Phone, UuidStr

BookingStatus = Literal[BOOKING_STATUSES]
PaymentStatus = Literal[PAYMENT_STATUSES]


class LockRequest(BaseModel):
    slot_id: UuidStr
    reserved_capacity: int = Field(default=1, ge=1)
    session_id: Optional[str] = Field(default=None, max_length=120)


class SlotIdsRequest(BaseModel):
    slot_ids: list[UuidStr] = Field(default_factory=list)


class CreateBookingRequest(BaseModel):
    slot_id: UuidStr
    service_id: UuidStr
    tenant_id: UuidStr
    customer_name: str = Field(min_length=1, max_length=160)
    customer_phone: Phone
    customer_email: Optional[str] = Field(default=None, max_length=255)
    visitor_count: int = Field(default=1, ge=1)
    adult_count: Optional[int] = Field(default=None, ge=0)
    child_count: Optional[int] = Field(default=None, ge=0)
    total_price: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    lock_id: Optional[UuidStr] = None
    session_id: Optional[str] = Field(default=None, max_length=120)
    customer_id: Optional[UuidStr] = None
    offer_id: Optional[UuidStr] = None
    language: str = "en"

    @field_validator("customer_name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("customer_name is required")
        return v

    @field_validator("customer_email")
    @classmethod
    def blank_email_is_none(cls, v):
        if v is None:
            return None
        return v.strip().lower() or None

    @field_validator("language")
    @classmethod
    def known_language(cls, v):
        return "ar" if (v or "").lower() == "ar" else "en"

    @model_validator(mode="after")
    def default_visitor_split(self):
        # older clients only send visitor_count
        if self.adult_count is None and self.child_count is None:
            self.adult_count = self.visitor_count
            self.child_count = 0
        elif self.adult_count is None:
            self.adult_count = max(self.visitor_count - self.child_count, 0)
        elif self.child_count is None:
            self.child_count = max(self.visitor_count - self.adult_count, 0)
        return self


class UpdateBookingRequest(BaseModel):
    # visitor counts are capacity-bearing and are rejected here
    model_config = ConfigDict(extra="forbid")

    customer_name: Optional[str] = Field(default=None, min_length=1, max_length=160)
    customer_phone: Optional[Phone] = None
    customer_email: Optional[str] = Field(default=None, max_length=255)
    total_price: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[BookingStatus] = None
    notes: Optional[str] = None
    slot_id: Optional[UuidStr] = None


class CancelBookingRequest(BaseModel):
    allow_delete_paid: bool = False
    reason: Optional[str] = None


class PaymentStatusRequest(BaseModel):
    payment_status: PaymentStatus


class CheckInRequest(BaseModel):
    # raw scanner content: JSON payload, bare UUID or booking URL
    booking_id: str = Field(min_length=1, max_length=2048)
