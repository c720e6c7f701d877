"""Application configuration and settings."""
import os
from dotenv import load_dotenv

# Load environment variables from .env (if present)
load_dotenv()

# Database configuration (archive of policy document versions)
SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./policygate.db")

# Security configuration - REQUIRED, no default for security
ADMIN_API_KEY = os.environ.get("ADMIN_API_KEY")
if not ADMIN_API_KEY:
    raise ValueError(
        "ADMIN_API_KEY environment variable is required. "
        "Please set it in your .env file or environment variables."
    )

# Secret used to verify the HS256 bearer tokens issued to blog users
ACCESS_TOKEN_SECRET = os.environ.get("ACCESS_TOKEN_SECRET")
if not ACCESS_TOKEN_SECRET:
    raise ValueError(
        "ACCESS_TOKEN_SECRET environment variable is required. "
        "Please set it in your .env file or environment variables."
    )

# Policy loaded at startup when the database holds no active version
POLICY_FILE = os.getenv("POLICY_FILE", "policies/blog.json")

# Reject request attributes that the resource type does not declare
STRICT_ATTRIBUTES = os.getenv("STRICT_ATTRIBUTES", "false").strip().lower() in ("1", "true", "yes")

# Mount prefix removed from the request path before resource extraction
API_PREFIX = os.getenv("API_PREFIX", "").rstrip("/")

LOG_DIR = os.getenv("LOG_DIR", "logs")
