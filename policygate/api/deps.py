"""API dependencies."""
import json

from fastapi import Depends, HTTPException, Request, status

from policygate.core.database import get_db
from policygate.core.security import get_current_subject
from policygate.services.decision import DecisionEngine
from policygate.services.enforcement import PolicyEnforcer
from policygate.services.policy import Decision, Subject
from policygate.services.policy_store import PolicyStore

__all__ = ["get_db", "get_policy_store", "get_decision_engine", "get_enforcer", "enforce_policy"]


def get_policy_store(request: Request) -> PolicyStore:
    return request.app.state.policy_store


def get_decision_engine(request: Request) -> DecisionEngine:
    return request.app.state.decision_engine


def get_enforcer(request: Request) -> PolicyEnforcer:
    return request.app.state.enforcer


async def _json_body(request: Request):
    """Request body as parsed JSON, or None when empty or not JSON."""
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return None


async def enforce_policy(
    request: Request,
    subject: Subject = Depends(get_current_subject),
    enforcer: PolicyEnforcer = Depends(get_enforcer),
) -> Decision:
    """Authorize the current request; 403 stops it before the handler runs.

    The decision is left on ``request.state.decision`` for handlers and
    anything downstream that wants to audit it.
    """
    body = await _json_body(request)
    decision = enforcer.check(subject, request.method, request.url.path, body)
    if not decision.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    request.state.decision = decision
    return decision
