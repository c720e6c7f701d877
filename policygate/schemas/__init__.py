"""Pydantic schemas."""
from policygate.schemas.schemas import (
    PolicyBase, PolicyCreate, PolicyResponse, ActivePolicyResponse, PolicyErrorResponse,
    SubjectIn, ResourceIn, AuthRequest, AuthResponse, PermissionOut, CandidateOut
)
from policygate.schemas.policy_document import PolicyDocument

__all__ = [
    "PolicyBase", "PolicyCreate", "PolicyResponse", "ActivePolicyResponse", "PolicyErrorResponse",
    "SubjectIn", "ResourceIn", "AuthRequest", "AuthResponse", "PermissionOut", "CandidateOut",
    "PolicyDocument"
]
