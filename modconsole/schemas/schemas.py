"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime

from modconsole.models.enums import Severity


# ---- Auth ----
class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    community_id: Optional[str] = None

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None

class SensitiveModeRequest(BaseModel):
    password: str = Field(..., min_length=1)

class SensitiveModeOut(BaseModel):
    enabled: bool
    expires_at: Optional[datetime] = None


# ---- Commands ----
class CommandRunRequest(BaseModel):
    input: Dict[str, Any] = Field(default_factory=dict)

class CommandRunOut(BaseModel):
    status: str
    message: str
    approval_id: Optional[str] = None
    redirect_url: Optional[str] = None

class CommandToggleRequest(BaseModel):
    enabled: bool


# ---- Approvals ----
class ApprovalOut(BaseModel):
    id: str
    status: str
    risk_level: str
    requested_by_user_id: str
    payload: Dict[str, Any]
    reason: Optional[str] = None
    decided_by_user_id: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: datetime

class ApprovalDecisionRequest(BaseModel):
    decision: str = Field(..., min_length=1, max_length=16)
    reason: Optional[str] = Field(None, max_length=500)

class ApprovalDecisionOut(BaseModel):
    approval_id: str
    status: str
    message: str
    redirect_url: Optional[str] = None


# ---- Audit ----
class AuditLogOut(BaseModel):
    id: str
    chain_index: int
    prev_hash: Optional[str] = None
    hash: str
    event_type: str
    user_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    metadata_json: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class ChainVerificationOut(BaseModel):
    ok: bool
    entries_checked: int
    first_broken_index: Optional[int] = None
    reason: Optional[str] = None
    partial: bool = False


# ---- Security ----
class SecurityEventOut(BaseModel):
    id: str
    severity: Severity
    event_type: str
    user_id: Optional[str] = None
    metadata_json: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str
    detail: Optional[str] = None
