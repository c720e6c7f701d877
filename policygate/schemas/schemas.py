"""Pydantic schemas for request/response validation."""
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any, Union
from datetime import datetime

from policygate.services.policy import Decision, Permission


# --- Policy Version Schemas ---
class PolicyBase(BaseModel):
    name: str
    content: Dict[str, Any]  # Policy document, validated on create


class PolicyCreate(PolicyBase):
    pass


class PolicyResponse(PolicyBase):
    id: int
    version: int
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ActivePolicyResponse(PolicyResponse):
    snapshot_version: int


class PolicyErrorResponse(BaseModel):
    detail: str
    errors: List[str] = Field(default_factory=list)


# --- Authorization Schemas (The Engine I/O) ---
class SubjectIn(BaseModel):
    id: str
    roles: List[str] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(default_factory=dict)


class ResourceIn(BaseModel):
    type: str
    key: Optional[Union[str, int]] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)


class AuthRequest(BaseModel):
    subject: SubjectIn
    action: str
    resource: ResourceIn
    dry_run: bool = False  # Evaluate without emitting an audit event
    explain: bool = False  # Include every candidate permission in the response


class PermissionOut(BaseModel):
    role: str
    action: str
    resource_type: str
    condition: Optional[Dict[str, Any]] = None

    @classmethod
    def from_permission(cls, permission: Permission) -> "PermissionOut":
        return cls(**permission.to_document(), role=permission.role)


class CandidateOut(BaseModel):
    permission: PermissionOut
    satisfied: bool


class AuthResponse(BaseModel):
    allowed: bool
    reason: str
    matched_permission: Optional[PermissionOut] = None
    policy_version: int
    candidates: Optional[List[CandidateOut]] = None

    @classmethod
    def from_decision(cls, decision: Decision, candidates=None) -> "AuthResponse":
        return cls(
            allowed=decision.allowed,
            reason=decision.reason.value,
            matched_permission=(
                PermissionOut.from_permission(decision.matched_permission)
                if decision.matched_permission is not None else None
            ),
            policy_version=decision.policy_version,
            candidates=(
                [CandidateOut(permission=PermissionOut.from_permission(p), satisfied=ok) for p, ok in candidates]
                if candidates is not None else None
            ),
        )
