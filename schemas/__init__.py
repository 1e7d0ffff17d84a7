"""Request schemas validated before any capacity logic runs."""

from pydantic import ValidationError

from services.errors import InvalidInput


def parse(schema, data):
    """Validate ``data`` against ``schema`` or raise InvalidInput naming the first bad field."""
    try:
        return schema.model_validate(data or {})
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        message = first.get("msg", "Invalid request")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        raise InvalidInput(f"{field}: {message}" if field else message, field=field)
