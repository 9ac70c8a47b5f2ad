"""Email endpoints used by registration and notification flows."""

from fastapi import APIRouter

from app.schemas.common import APIResponse
from app.schemas.email import EmailSentResponse, SendEmailRequest, TestEmailRequest
from app.services.email_service import EmailMessage, get_email_service

router = APIRouter(prefix="/email", tags=["Email"])


@router.post("/send", response_model=APIResponse[EmailSentResponse])
async def send_email(request: SendEmailRequest):
    """Deliver a transactional email, retrying transient failures."""
    service = get_email_service()
    message_id = await service.send(
        EmailMessage(
            recipient=request.recipient,
            subject=request.subject,
            html_body=request.html_body,
            text_body=request.text_body,
        )
    )
    return APIResponse(data=EmailSentResponse(message_id=message_id), message="Email sent")


@router.post("/test", response_model=APIResponse[EmailSentResponse])
async def send_test_email(request: TestEmailRequest):
    """Send a test email to check the SMTP configuration."""
    service = get_email_service()
    message_id = await service.send_test_email(request.to.strip())
    return APIResponse(
        data=EmailSentResponse(message_id=message_id),
        message=f"Test email sent to {request.to.strip()}",
    )
