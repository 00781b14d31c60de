from typing import Optional
from pydantic import BaseModel, EmailStr

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class MagicLinkVerifyRequest(BaseModel):
    token: str

class MagicLinkToken(Token):
    policy_id: Optional[int] = None
