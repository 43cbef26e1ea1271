import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .exception_handlers import register_exception_handlers
from .lifespan import lifespan
from .middleware.logging import LoggingMiddleware
from .routers import admin_houses, postback_logs, postbacks

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Betlink Commission Engine", version="0.1.0", lifespan=lifespan)


@app.get("/health")
async def health():
    """Liveness check; never touches the database."""
    return {"ok": True, "service": "betlink", "version": "0.1.0", "status": "healthy"}


register_exception_handlers(app)

app.add_middleware(LoggingMiddleware)


def cors_options(raw_origins: str) -> dict:
    """Wildcard origins never go out with credentials."""
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()] or ["*"]
    return {"allow_origins": origins, "allow_credentials": "*" not in origins}


app.add_middleware(
    CORSMiddleware,
    **cors_options(settings.cors_allow_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(postbacks.router)
app.include_router(admin_houses.router)
app.include_router(postback_logs.router)
