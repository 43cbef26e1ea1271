"""
Structured logging utility for the postback pipeline
"""
import logging
import json
from datetime import datetime
from typing import Dict, Any, Optional


def get_logger(name: str) -> logging.Logger:
    """Get a logger with JSON-like structured output"""
    logger = logging.getLogger(name)
    return logger


def log_postback_event(
    logger: logging.Logger,
    step: str,
    log_id: Optional[int],
    house: Optional[str],
    ok: bool,
    extra: Optional[Dict[str, Any]] = None
):
    """
    Log an ingestion step with structured format:
    {"at":"postback","step":"...","log_id":...,"house":"...","ok":true/false,"extra":{...}}
    """
    log_data = {
        "at": "postback",
        "step": step,
        "log_id": log_id,
        "house": house,
        "ok": ok,
        "ts": datetime.utcnow().isoformat()
    }
    if extra:
        log_data["extra"] = extra

    log_msg = json.dumps(log_data, separators=(',', ':'), default=str)

    if ok:
        logger.info(log_msg)
    else:
        logger.warning(log_msg)
