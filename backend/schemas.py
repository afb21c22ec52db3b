# schemas.py
from datetime import datetime
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Any, Optional, Literal

class SubmissionCreate(BaseModel):
    name: Optional[str] = None
    gender: Optional[str] = None
    nationality: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    message: Optional[str] = None
    honeypot: Optional[Any] = None        # hidden form field, humans leave it empty
    recaptchaToken: Optional[str] = None

class SubmissionOut(BaseModel):
    id: int
    name: str
    gender: str
    nationality: str
    email: str
    phone: str
    address: str
    message: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True

class NotificationStatus(BaseModel):
    userEmail: Literal["sent", "failed"]
    adminEmail: Literal["sent", "failed"]

class SubmissionCreated(BaseModel):
    message: str
    survey: SubmissionOut
    notifications: NotificationStatus

class AdminLogin(BaseModel):
    username: str = Field(default="", description="Admin username")
    password: str = Field(default="", description="Admin password")

class TokenOut(BaseModel):
    token: str

class MessageOut(BaseModel):
    message: str

