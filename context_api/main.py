"""
Context API: issues opaque SMART launch ids and resolves them back to their context resource.
POST /api/context (context.write), GET /api/context/{launch_id} (context) returning a FHIR
Parameters resource with the context resource in parameter[0].resource.
Port 8088.
"""
import json
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from context_api.auth import RequireRead, RequireWrite
from context_api.config import LAUNCH_TTL_SECONDS
from context_api.database import SessionLocal, get_db, init_db, purge_expired
from context_api.models import LaunchContext

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and drop launch contexts that expired while we were down."""
    init_db()
    db = SessionLocal()
    try:
        purge_expired(db)
    finally:
        db.close()
    yield


app = FastAPI(title="Context API", version="0.1.0", lifespan=lifespan)


def _operation_outcome(code: str, diagnostics: str) -> dict:
    return {
        "resourceType": "OperationOutcome",
        "issue": [{"severity": "error", "code": code, "diagnostics": diagnostics}],
    }


def to_parameters(resource: dict) -> dict:
    """Wrap a context resource the way resolvers expect it (parameter[0].resource)."""
    return {
        "resourceType": "Parameters",
        "parameter": [{"name": "context", "resource": resource}],
    }


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "context_api"}


@app.post("/api/context", status_code=201)
def create_context(
    resource: dict[str, Any] = Body(...),
    claims: dict = RequireWrite,
    db: Session = Depends(get_db),
):
    """Store a context resource and return a fresh opaque launch id for it."""
    resource_type = resource.get("resourceType")
    if not isinstance(resource_type, str) or not resource_type:
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_request", "error_description": "resourceType is required"},
        )
    purge_expired(db)
    launch_id = secrets.token_urlsafe(24)
    now = datetime.now(timezone.utc)
    db.add(
        LaunchContext(
            launch_id=launch_id,
            resource_type=resource_type,
            resource_json=json.dumps(resource),
            created_at=now,
            expires_at=now + timedelta(seconds=LAUNCH_TTL_SECONDS),
        )
    )
    db.commit()
    logger.info("Launch context created: type=%s client=%s", resource_type, claims.get("client_id") or claims.get("sub"))
    return {"launch": launch_id, "expires_in": LAUNCH_TTL_SECONDS}


@app.get("/api/context/{launch_id}")
def get_context(
    launch_id: str,
    claims: dict = RequireRead,
    db: Session = Depends(get_db),
):
    """Resolve a launch id. Unknown or expired ids are 404 with an OperationOutcome."""
    row = db.query(LaunchContext).filter(LaunchContext.launch_id == launch_id).first()
    if row is None or row.expired():
        logger.info("Launch context not found or expired: %s", launch_id)
        return JSONResponse(
            status_code=404,
            content=_operation_outcome("not-found", f"Launch context {launch_id} not found"),
        )
    return to_parameters(row.get_resource())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "context_api.main:app",
        host="127.0.0.1",
        port=8088,
        reload=True,
    )
