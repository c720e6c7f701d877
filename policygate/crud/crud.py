"""Database CRUD operations for archived policy versions."""
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc
from policygate.models import Policy
from policygate import schemas
from policygate.core.logging_config import logger


def get_active_policy(db: Session) -> Optional[Policy]:
    """Get the currently active policy version."""
    return db.query(Policy).filter(Policy.is_active == True).first()  # noqa: E712


def get_policy_by_id(db: Session, policy_id: int) -> Optional[Policy]:
    """Retrieve a specific policy version by its ID."""
    return db.query(Policy).filter(Policy.id == policy_id).first()


def get_all_policies(db: Session, skip: int = 0, limit: int = 100) -> List[Policy]:
    """Retrieve all policy versions, newest first."""
    return db.query(Policy).order_by(Policy.id.desc()).offset(skip).limit(limit).all()


def create_policy(db: Session, policy: schemas.PolicyCreate) -> Policy:
    """Store a new version of a named policy (auto-versioned, inactive)."""
    last_policy = db.query(Policy)\
        .filter(Policy.name == policy.name)\
        .order_by(desc(Policy.version))\
        .first()

    new_version = last_policy.version + 1 if last_policy else 1

    db_policy = Policy(
        name=policy.name,
        content=policy.content,
        version=new_version,
        is_active=False
    )
    db.add(db_policy)
    db.commit()
    db.refresh(db_policy)
    logger.info(f"Stored policy {db_policy.name} v{db_policy.version} (ID: {db_policy.id})")
    return db_policy


def mark_active(db: Session, policy: Policy) -> Policy:
    """Make ``policy`` the only active version.

    Callers run this as the policy store's load commit, so a document that
    fails validation never becomes the active row.
    """
    try:
        db.query(Policy).filter(Policy.is_active == True, Policy.id != policy.id).update(  # noqa: E712
            {Policy.is_active: False},
            synchronize_session=False
        )
        policy.is_active = True
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Failed to mark policy ID {policy.id} active")
        raise
    db.refresh(policy)
    logger.info(f"Policy activated: {policy.name} v{policy.version} (ID: {policy.id})")
    return policy
