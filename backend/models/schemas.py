"""
Pydantic models/schemas for the application
"""
from pydantic import BaseModel
from typing import Optional


# ==================== AUTH MODELS ====================

class SendCodeRequest(BaseModel):
    email: Optional[str] = None

class VerifyCodeRequest(BaseModel):
    email: Optional[str] = None
    code: Optional[str] = None
