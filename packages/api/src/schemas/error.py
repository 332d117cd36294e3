# This project was developed with assistance from AI tools.
"""RFC 7807 Problem Details error response schema."""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """RFC 7807 Problem Details, extended with a casework error code.

    See https://datatracker.ietf.org/doc/html/rfc7807
    """

    type: str = Field(default="about:blank")
    title: str = Field(description="Short summary taken from the HTTP status.")
    status: int
    detail: str = Field(default="", description="What went wrong for this request.")
    code: str | None = Field(
        default=None,
        description="Stable machine-readable error code for domain failures, e.g. 'rate_limit_exceeded'.",
    )
    request_id: str = Field(default="", description="Correlation ID for tracing this request in logs.")
