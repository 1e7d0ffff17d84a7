from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from schemas.common import Phone, UuidStr


class PackageServiceItem(BaseModel):
    service_id: UuidStr
    capacity_total: int = Field(ge=1)


class CreatePackageRequest(BaseModel):
    name: str = Field(min_length=1, max_length=160)
    total_price: Decimal = Field(ge=0)
    services: list[PackageServiceItem] = Field(min_length=1)


class CreateSubscriptionRequest(BaseModel):
    package_id: UuidStr
    customer_id: Optional[UuidStr] = None
    customer_name: Optional[str] = Field(default=None, max_length=160)
    customer_phone: Optional[Phone] = None
    customer_email: Optional[str] = Field(default=None, max_length=255)
    total_price: Optional[Decimal] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def customer_identified(self):
        if not self.customer_id and not (self.customer_name and self.customer_phone):
            raise ValueError("customer_id or customer_name and customer_phone are required")
        return self


class CapacityQuery(BaseModel):
    customer_id: UuidStr
    service_id: UuidStr
