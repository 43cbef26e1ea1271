"""
Shared FastAPI dependencies
"""
import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request

from .config import settings
from .workers.sync_scheduler import SyncScheduler


def require_admin_token(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")):
    """Admin endpoints are open when ADMIN_API_TOKEN is unset."""
    expected = settings.admin_api_token
    if not expected:
        return
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid admin token")


def get_sync_scheduler(request: Request) -> SyncScheduler:
    scheduler = getattr(request.app.state, "sync_scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Sync scheduler not initialized")
    return scheduler
