"""SQLAlchemy database models."""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from policygate.core.database import Base


# Archive of policy documents with per-name versioning.
# At most one row is active; its content is what the policy store serves.
class Policy(Base):
    __tablename__ = "policies"
    id = Column(Integer, primary_key=True, index=True)
    version = Column(Integer, nullable=False)
    name = Column(String, nullable=False, index=True)
    content = Column(JSON, nullable=False)
    is_active = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
