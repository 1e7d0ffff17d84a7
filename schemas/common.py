import uuid
from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator

from utils.phone import normalize_phone


def _uuid_string(value: str) -> str:
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValueError("must be a valid UUID")


def _phone(value: str) -> str:
    normalized = normalize_phone(value)
    if not normalized:
        raise ValueError("Invalid phone number format")
    return normalized


def _naive_utc(value: datetime) -> datetime:
    # columns store naive UTC
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UuidStr = Annotated[str, AfterValidator(_uuid_string)]
Phone = Annotated[str, AfterValidator(_phone)]
UtcDatetime = Annotated[datetime, AfterValidator(_naive_utc)]
