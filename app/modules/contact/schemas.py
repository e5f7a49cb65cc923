from pydantic import BaseModel, EmailStr, Field


class ContactRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    message: str = Field(min_length=10, max_length=5000)


class WaitlistRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr


class SubmissionResponse(BaseModel):
    success: bool
    message: str
