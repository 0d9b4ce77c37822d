"""Liveness and database health."""
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from wardrobe.core.database import check_connection


router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    db_ok = check_connection()
    payload = {
        "ok": db_ok,
        "db": {"connected": db_ok},
        "computed_at": datetime.now(timezone.utc).isoformat(),
    }
    return JSONResponse(status_code=200 if db_ok else 503, content=payload)
