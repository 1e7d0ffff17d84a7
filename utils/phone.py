import re

_SEPARATORS = re.compile(r"[\s\-()]")
_MOBILE_PREFIXES = ("1", "2", "5")


def _strip_egypt_trunk_zero(national: str):
    # +20 0 1xxxxxxxxx -> +20 1xxxxxxxxx
    if national.startswith("0") and len(national) >= 10 and national[1:2] in _MOBILE_PREFIXES:
        return national[1:]
    return None


def normalize_phone(phone: str):
    """
    Return ``phone`` in E.164 form, or None when the format can't be determined.

    Bare numbers are assumed to be Egyptian (the default market).
    """
    if not phone or not isinstance(phone, str):
        return None

    cleaned = _SEPARATORS.sub("", phone)

    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]

    if cleaned.startswith("+"):
        if cleaned.startswith("+20"):
            fixed = _strip_egypt_trunk_zero(cleaned[3:])
            if fixed:
                return "+20" + fixed
        return cleaned

    if cleaned.startswith("0") and len(cleaned) == 11 and cleaned[1] in _MOBILE_PREFIXES:
        return "+20" + cleaned[1:]

    if cleaned.startswith("20") and len(cleaned) >= 12:
        fixed = _strip_egypt_trunk_zero(cleaned[2:])
        return "+20" + fixed if fixed else "+" + cleaned

    if len(cleaned) == 10 and cleaned[0] in _MOBILE_PREFIXES:
        return "+20" + cleaned

    return None
