# This project was developed with assistance from AI tools.
"""Authentication schemas."""

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """Decoded bearer token claims. ``sub`` is the user's primary key."""

    sub: str
    email: str = ""
    exp: int | None = None
