"""FastAPI application entry point."""
from pathlib import Path

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from policygate import crud
from policygate.api.v1.router import api_router
from policygate.core.config import API_PREFIX, POLICY_FILE, STRICT_ATTRIBUTES
from policygate.core.database import SessionLocal, init_db, ping
from policygate.core.exceptions import InvalidPolicy
from policygate.core.logging_config import logger
from policygate.services.attributes import AttributeResolver
from policygate.services.audit import AuditEmitter
from policygate.services.decision import DecisionEngine
from policygate.services.enforcement import CRUD_ACTION_MAP, PolicyEnforcer
from policygate.services.policy_store import PolicyStore

SERVICE_NAME = "Policygate Blog Authorization Service"
SERVICE_VERSION = "1.0.0"

logger.info(f"Starting {SERVICE_NAME}")

try:
    init_db()
    logger.info("Database tables initialized successfully")
except Exception as e:
    logger.error(f"Failed to initialize database tables: {e}")
    raise

app = FastAPI(
    title=SERVICE_NAME,
    description="Local ABAC decision engine enforcing role and attribute policies on a blog API",
    version=SERVICE_VERSION
)

# CORS (enable for local dev tooling)
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# The app owns the one policy store; everything else receives it explicitly
policy_store = PolicyStore()
audit_emitter = AuditEmitter()
decision_engine = DecisionEngine(policy_store, resolver=AttributeResolver(), audit=audit_emitter)
enforcer = PolicyEnforcer(
    decision_engine,
    strict=STRICT_ATTRIBUTES,
    prefix=API_PREFIX,
    action_map=CRUD_ACTION_MAP,
)

app.state.policy_store = policy_store
app.state.audit = audit_emitter
app.state.decision_engine = decision_engine
app.state.enforcer = enforcer

app.include_router(api_router)
logger.info("API routes registered successfully")


def bootstrap_policy(store: PolicyStore, db: Session, policy_file: str = POLICY_FILE) -> bool:
    """Load the active archived policy, falling back to the policy file.

    Returns False when nothing could be loaded; the store then keeps its
    empty snapshot and every request is denied.
    """
    active_policy = crud.get_active_policy(db)
    if active_policy is not None:
        try:
            store.load(active_policy.content)
            return True
        except InvalidPolicy as e:
            logger.error(f"Active policy ID {active_policy.id} no longer loads: {e}")

    path = Path(policy_file) if policy_file else None
    if path is None or not path.is_file():
        logger.warning("No policy available at startup; all requests will be denied")
        return False
    try:
        store.load_file(path)
        return True
    except InvalidPolicy as e:
        logger.error(f"Policy file {path} rejected: {e}")
        return False


@app.on_event("startup")
async def startup_event():
    """Load the policy before serving requests."""
    db = SessionLocal()
    try:
        bootstrap_policy(policy_store, db)
    finally:
        db.close()
    logger.info("Application startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Application shutting down")


@app.get("/", tags=["Health"])
def read_root():
    """Basic health check endpoint."""
    return {"status": "Policygate is Operational", "docs": "/docs"}


@app.get("/health", tags=["Health"], status_code=status.HTTP_200_OK)
def health_check():
    """Detailed health check endpoint with system status."""
    health_status = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "checks": {}
    }

    # Database connectivity check
    db = SessionLocal()
    try:
        ping(db)
        health_status["checks"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except Exception as e:
        health_status["status"] = "degraded"
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}"
        }
        logger.error(f"Database health check failed: {e}")
    finally:
        db.close()

    # Snapshot check; version 0 is the empty deny-all policy
    snapshot = policy_store.current_snapshot()
    health_status["checks"]["policy"] = {
        "status": "healthy" if snapshot.version else "warning",
        "message": f"Serving policy '{snapshot.name}'" if snapshot.version else "No policy loaded; denying all requests",
        "snapshot_version": snapshot.version,
    }

    status_code = status.HTTP_200_OK
    if health_status["status"] == "degraded":
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(content=health_status, status_code=status_code)
