from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.orm import Session
from sqlalchemy import text, inspect
from pydantic import BaseModel
from datetime import datetime, timezone
import logging, os, sys

from governance.core.database import get_db, engine, Base
from governance.core.errors import ApprovalError
from governance.core.security import create_access_token, create_refresh_token, decode_token, ACCESS_TTL_MIN, VALID_ROLES
from governance.crud.change_request import reset_column_cache
from governance.deps.auth import require_role
from governance.metrics import init_metrics_zero
from governance.utils.audit_sink import AUDIT_DIR
from governance.utils.runtime_config import set_slack_webhook, get_slack_webhook
from governance.api.approvals import router as approvals_router
from governance.api.delegations import router as delegations_router
import governance.models  # noqa: F401  (registers tables on Base)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

logger.info("[startup] database engine=%s url=%s", engine.name, engine.url.render_as_string(hide_password=True))

# FastAPI app
app = FastAPI(
    title="PMO Change Approvals API",
    description="Multi-step change-request approval chain with holiday-cover delegation",
    version="0.3.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)

@app.exception_handler(ApprovalError)
def approval_error_handler(request: Request, exc: ApprovalError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.on_event("startup")
def on_startup():
    logger.info("[startup] creating tables")
    try:
        Base.metadata.create_all(bind=engine)
        reset_column_cache()
    except Exception as e:
        logger.error("[startup] error creating tables: %s", e)
    logger.info("[startup] tables now: %s", inspect(engine).get_table_names())
    logger.info("[startup] audit dir: %s", AUDIT_DIR)
    init_metrics_zero()

app.include_router(approvals_router)
app.include_router(delegations_router)

@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        tables = inspect(engine).get_table_names()
        return {
            "status": "healthy",
            "database": "connected",
            "tables": tables,
            "timestamp": datetime.now(timezone.utc)
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e),
            "timestamp": datetime.now(timezone.utc)
        }

class LoginIn(BaseModel):
    user_id: str
    role: str = "member"

def dev_login_enabled() -> bool:
    return os.getenv("AUTH_DEV_LOGIN", "0").strip().lower() in ("1", "true", "yes")

@app.post("/auth/login")
def auth_login(body: LoginIn):
    # self-asserted identity; only for local and test deployments
    if not dev_login_enabled():
        raise HTTPException(status_code=403, detail="Dev login disabled (set AUTH_DEV_LOGIN=1)")
    role = body.role.lower()
    if role not in VALID_ROLES:
        raise HTTPException(400, f"role must be {'|'.join(VALID_ROLES)}")
    access = create_access_token(body.user_id, role)
    refresh = create_refresh_token(body.user_id, role)
    return {"access_token": access, "refresh_token": refresh, "token_type": "bearer", "expires_in": ACCESS_TTL_MIN * 60, "role": role, "user_id": body.user_id}

class RefreshIn(BaseModel):
    refresh_token: str

@app.post("/auth/refresh")
def auth_refresh(body: RefreshIn):
    try:
        data = decode_token(body.refresh_token, expected_type="refresh")
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid/expired refresh token")
    new_access = create_access_token(data["sub"], data.get("role", "member"))
    return {"access_token": new_access, "token_type": "bearer", "expires_in": ACCESS_TTL_MIN * 60}

class SlackWebhookIn(BaseModel):
    url: str

@app.post("/config/slack-webhook", response_model=dict)
def set_webhook(body: SlackWebhookIn, user=Depends(require_role("admin"))):
    url = body.url.strip()
    if url and not url.startswith("https://hooks.slack.com/"):
        raise HTTPException(status_code=400, detail="Invalid Slack webhook URL")
    set_slack_webhook(url)
    return {"ok": True, "configured": bool(url)}

@app.get("/config/slack-webhook", response_model=dict)
def get_webhook(user=Depends(require_role("admin"))):
    return {"configured": bool(get_slack_webhook())}

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
