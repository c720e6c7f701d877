"""Database CRUD operations."""
from policygate.crud.crud import (
    get_active_policy,
    get_policy_by_id,
    get_all_policies,
    create_policy,
    mark_active
)

__all__ = [
    "get_active_policy",
    "get_policy_by_id",
    "get_all_policies",
    "create_policy",
    "mark_active"
]
