"""Shared validation utilities"""

import re
from datetime import time
from typing import Any, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..config import DEFAULT_PHONE_COUNTRY_CODE
from ..errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model: type[ModelT], payload: Any) -> ModelT:
    """
    Validate a loosely-typed payload against a request schema.

    Already-built model instances pass through untouched.

    Raises:
        ValidationError: With a readable summary of every failing field
    """
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid {model.__name__}: {problems}") from e


def normalize_phone(phone: Optional[str], country_code: str = DEFAULT_PHONE_COUNTRY_CODE) -> str:
    """
    Normalize a client phone number to E.164 so it can be used as the client dedup key.

    Local numbers with a trunk "0" prefix ("067 123 45 67") and numbers written without
    the leading "+" are both mapped onto "+<country_code>...".

    Raises:
        ValueError: If the phone is empty or has an implausible digit count
    """
    if not phone or not phone.strip():
        raise ValueError("Phone number is required")

    raw = re.sub(r"[\s()\-.]", "", phone.strip())
    has_plus = raw.startswith("+")
    digits = re.sub(r"\D", "", raw)

    if not has_plus:
        if digits.startswith("0"):
            digits = f"{country_code}{digits[1:]}"
        elif not digits.startswith(country_code):
            digits = f"{country_code}{digits}"

    # E.164 allows at most 15 digits
    if len(digits) < 10 or len(digits) > 15:
        raise ValueError("Phone number must contain 10-15 digits")

    return f"+{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address, or None for an empty value

    Raises:
        ValueError: If email format is invalid
    """
    if not email or not email.strip():
        return None

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def parse_hhmm(value: str) -> time:
    """Parse a "HH:MM" time of day; "24:00" is returned as time.max, the end-of-day marker"""
    if not isinstance(value, str) or not re.match(r"^\d{1,2}:\d{2}$", value.strip()):
        raise ValueError(f"Invalid time of day: {value!r}. Expected HH:MM")

    hours, minutes = (int(part) for part in value.strip().split(":"))
    if hours == 24 and minutes == 0:
        return time.max
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time of day: {value!r}")
    return time(hours, minutes)
