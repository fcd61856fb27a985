from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import get_db
from .models import AuditLog

router = APIRouter(prefix="/admin", tags=["admin"])


# -------------------------
# Gate decision log
# -------------------------
@router.get("/audit")
def get_audit(limit: int = 80, asset_id: Optional[str] = None, db: Session = Depends(get_db)):
    q = select(AuditLog)
    if asset_id:
        q = q.where(AuditLog.asset_id == asset_id)
    rows = db.execute(q.order_by(AuditLog.id.desc()).limit(limit)).scalars().all()

    return [
        {
            "created_at": str(log.created_at),
            "decision_id": log.decision_id,
            "gate_user": log.gate_user,
            "event_id": log.event_id,
            "asset_id": log.asset_id,
            "status": log.status,
            "reason_code": log.reason_code,
        }
        for log in rows
    ]
