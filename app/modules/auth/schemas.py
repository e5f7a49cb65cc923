from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from typing import Literal, Optional


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    user_id: str
    email: str


class SignupRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    email: EmailStr
    password: str = Field(min_length=8)
    full_name: Optional[str] = Field(default=None, max_length=255)


class SignupResponse(BaseModel):
    user_id: Optional[str] = None
    email: str
    message: str


class EmailRequest(BaseModel):
    email: EmailStr


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class UpdatePasswordRequest(BaseModel):
    password: str = Field(min_length=8)


class OAuthRequest(BaseModel):
    provider: Literal["google", "azure"]


class OAuthResponse(BaseModel):
    provider: str
    url: str
