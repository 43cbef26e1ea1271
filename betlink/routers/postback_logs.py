"""
Read-only access to the postback audit log
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..dependencies import require_admin_token
from ..models import PostbackLog
from ..services.store import ConversionStore

router = APIRouter(prefix="/api/admin/postback-logs", tags=["admin"], dependencies=[Depends(require_admin_token)])


def _serialize(log: PostbackLog) -> dict:
    return {
        "id": log.id,
        "source": log.source,
        "house": log.house_identifier,
        "event": log.event_type,
        "subid": log.subid,
        "customer_id": log.customer_id,
        "value": log.raw_value,
        "ip": log.ip,
        "status": log.status,
        "details": log.details,
        "created_at": log.created_at.isoformat() if log.created_at else None,
        "updated_at": log.updated_at.isoformat() if log.updated_at else None,
    }


@router.get("")
def list_postback_logs(
    house: Optional[str] = None,
    status: Optional[str] = None,
    source: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    total, rows = ConversionStore(db).list_audit_logs(
        house=house, status=status, source=source, limit=limit, offset=offset
    )
    return {"total": total, "limit": limit, "offset": offset, "items": [_serialize(r) for r in rows]}


@router.get("/stats")
def postback_log_stats(house: Optional[str] = None, db: Session = Depends(get_db)):
    counts = ConversionStore(db).audit_log_stats(house=house)
    return {"total": sum(counts.values()), "by_status": counts}
