"""SQLAlchemy models."""
from policygate.models.models import Policy
from policygate.core.database import Base

__all__ = ["Policy", "Base"]
