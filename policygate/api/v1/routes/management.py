"""Management API endpoints (policy versions). All require the admin API key."""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from policygate import schemas
from policygate import crud
from policygate.api.deps import get_db, get_policy_store
from policygate.core.exceptions import InvalidPolicy
from policygate.core.security import verify_admin_key
from policygate.services.policy_store import PolicyStore

router = APIRouter(dependencies=[Depends(verify_admin_key)])


def _invalid(e: InvalidPolicy) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid policy document.", "errors": e.errors},
    )


@router.post(
    "/policies/",
    response_model=schemas.PolicyResponse,
    responses={400: {"model": schemas.PolicyErrorResponse}},
)
def create_policy_api(
    policy: schemas.PolicyCreate,
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy_store),
):
    """Validate and store a new policy version. It is not activated."""
    try:
        store.validate(policy.content)
    except InvalidPolicy as e:
        return _invalid(e)
    return crud.create_policy(db=db, policy=policy)


@router.post(
    "/policies/{policy_id}/activate",
    response_model=schemas.PolicyResponse,
    responses={400: {"model": schemas.PolicyErrorResponse}},
)
def activate_policy_version_api(
    policy_id: int,
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy_store),
):
    """Mark a stored version active and load it into the policy store.

    The database commit happens under the store's writer lock, before the
    swap, so a failed commit leaves the serving snapshot untouched.
    """
    policy = crud.get_policy_by_id(db, policy_id)
    if not policy:
        raise HTTPException(status_code=404, detail="Policy not found")
    try:
        store.load(policy.content, commit=lambda snapshot: crud.mark_active(db, policy))
    except InvalidPolicy as e:
        return _invalid(e)
    return policy


@router.get("/policies/", response_model=List[schemas.PolicyResponse])
def list_policies_api(db: Session = Depends(get_db)):
    """Retrieves all stored policy versions, newest first."""
    return crud.get_all_policies(db)


@router.get("/policies/active", response_model=schemas.ActivePolicyResponse)
def get_active_policy_api(
    db: Session = Depends(get_db),
    store: PolicyStore = Depends(get_policy_store),
):
    """Retrieves the active stored version and the snapshot version serving it."""
    active_policy = crud.get_active_policy(db)
    if not active_policy:
        raise HTTPException(status_code=404, detail="No policy is currently active.")
    response = schemas.PolicyResponse.model_validate(active_policy)
    return schemas.ActivePolicyResponse(**response.model_dump(), snapshot_version=store.version)


@router.get("/policies/active/export")
def export_active_policy_api(store: PolicyStore = Depends(get_policy_store)):
    """Canonical document of the policy currently enforced."""
    return {"version": store.version, "document": store.export()}
