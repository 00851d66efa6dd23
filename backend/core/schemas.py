import re

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CamelModel(BaseModel):
    """Request/response model exchanged as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if len(normalized) > 255 or not EMAIL_PATTERN.match(normalized):
        raise ValueError('Invalid email address.')
    return normalized
