"""Email-related Pydantic schemas."""

from pydantic import BaseModel, Field


class SendEmailRequest(BaseModel):
    """A transactional email to deliver."""

    recipient: str = Field(..., min_length=3, max_length=255)
    subject: str = Field(..., min_length=1, max_length=500)
    html_body: str = Field(..., min_length=1)
    text_body: str | None = None


class TestEmailRequest(BaseModel):
    """Recipient for the configuration test email."""

    to: str = Field(..., min_length=3, max_length=255)


class EmailSentResponse(BaseModel):
    """Message-ID of a delivered email."""

    message_id: str
