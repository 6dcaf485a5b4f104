"""Shared schema base and validators."""

import re

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


class CamelModel(BaseModel):
    """Model serialized with camelCase keys; accepts either casing on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def check_password_strength(value: str) -> str:
    """8+ characters with an upper-case letter, a lower-case letter and a digit."""
    if len(value) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(value) > PASSWORD_MAX_LENGTH:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain an upper-case letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain a lower-case letter")
    if not re.search(r"\d", value):
        raise ValueError("Password must contain a digit")
    return value


class StatusResponse(CamelModel):
    status: str = "ok"
    message: str | None = None
