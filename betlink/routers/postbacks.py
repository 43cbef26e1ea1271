"""
Postback ingestion endpoint for betting houses
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..core.exceptions import IngestionError
from ..db import get_db
from ..services.postbacks import PostbackRequest, PostbackService

router = APIRouter(tags=["postbacks"])


async def _read_body(request: Request) -> Dict[str, Any]:
    """Form or JSON body fields; anything else (or nothing) is an empty dict."""
    if request.method != "POST":
        return {}
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        return {key: str(value) for key, value in form.items()}
    if "json" in content_type:
        try:
            body = await request.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
    return {}

@router.api_route("/webhook/{house_identifier}/{event_type}", methods=["GET", "POST"])
async def receive_postback(
    house_identifier: str,
    event_type: str,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Receive a conversion postback.

    Parameters (`subid`, `amount`, `customer_id`, `token`) come from the query
    string or a form/JSON body; body fields win. Always answers JSON with
    `success`, and `logId` whenever an audit log row was written.
    """
    query = dict(request.query_params)
    body = await _read_body(request)

    postback = PostbackRequest(
        house_identifier=house_identifier,
        event_type=event_type,
        params={**query, **body},
        method=request.method,
        ip=request.client.host if request.client else None,
        query=query,
        body=body,
    )

    try:
        outcome = PostbackService(db).process(postback)
    except IngestionError as e:
        content = {"success": False, "error": str(e)}
        if e.log_id is not None:
            content["logId"] = e.log_id
        return JSONResponse(status_code=e.http_status, content=content)

    return outcome.to_response()
