from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from marketplace.database.session import get_db_session

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/readiness")
def readiness(db: Session = Depends(get_db_session)):
    """Readiness check: the database answers a trivial query."""
    db.execute(text("SELECT 1"))
    return {"status": "ready", "checks": {"database": "ok"}}
