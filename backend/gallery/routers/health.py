from fastapi import APIRouter, HTTPException
from sqlalchemy import text

from gallery.db import session as session_module
from gallery.services.storage import get_object_store

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/live")
def live():
    return {"status": "live"}


@router.get("/health/ready")
def ready():
    try:
        db = session_module.SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as e:
        raise HTTPException(status_code=503, detail="db not ready") from e

    try:
        get_object_store().ping()
    except Exception as e:
        raise HTTPException(status_code=503, detail="s3 not ready") from e

    return {"status": "ready"}
