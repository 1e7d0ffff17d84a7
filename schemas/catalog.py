from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from schemas.common import UtcDatetime, UuidStr


class CreateServiceRequest(BaseModel):
    name: str = Field(min_length=1, max_length=160)
    base_price: Decimal = Field(default=Decimal("0"), ge=0)


class CreateSlotRequest(BaseModel):
    service_id: UuidStr
    start_time: UtcDatetime
    end_time: UtcDatetime
    total_capacity: int = Field(ge=0)

    @model_validator(mode="after")
    def ends_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self
