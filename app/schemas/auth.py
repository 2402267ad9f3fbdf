"""
Authentication schemas
"""
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    emp_code: str = Field(..., min_length=1, description="Employee code")
    password: str = Field(..., min_length=1, description="Password")


class TokenResponse(BaseModel):
    """Bearer token plus the claims clients need to route the user"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token lifetime in seconds")
    employee_id: int
    role: str
    organization_id: Optional[int] = None
