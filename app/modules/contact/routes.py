from fastapi import APIRouter, Depends
from app.core.rate_limit import auth_limiter, ip_rate_limit
from app.modules.contact.schemas import ContactRequest, SubmissionResponse, WaitlistRequest
from app.modules.contact.service import EmailService

router = APIRouter(tags=["contact"])


def get_email_service() -> EmailService:
    return EmailService()


@router.post("/contact", response_model=SubmissionResponse, dependencies=[Depends(ip_rate_limit(auth_limiter))])
async def submit_contact(
    submission: ContactRequest,
    mailer: EmailService = Depends(get_email_service)
):
    """Forward a contact form submission to the team inbox"""
    await mailer.send_contact(submission)
    return {"success": True, "message": "Message sent successfully"}


@router.post("/waitlist", response_model=SubmissionResponse, dependencies=[Depends(ip_rate_limit(auth_limiter))])
async def join_waitlist(
    signup: WaitlistRequest,
    mailer: EmailService = Depends(get_email_service)
):
    """Notify the team of a waitlist signup"""
    await mailer.send_waitlist(signup)
    return {"success": True, "message": "Successfully joined waitlist"}
