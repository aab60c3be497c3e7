from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI

from . import __version__
from .api import routes
from .config import get_settings
from .gateway import MarketDataGateway


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for startup/shutdown."""
    # Startup: the session is acquired lazily on the first authenticated call
    gateway = MarketDataGateway.from_settings(settings)
    routes.set_gateway(gateway)
    logger.info(f"quotegate {__version__} ready (upstream: {settings.base_url})")

    yield

    # Shutdown: close every stream channel and the HTTP client
    routes.set_gateway(None)
    await gateway.close()


app = FastAPI(
    title="quotegate",
    version=__version__,
    lifespan=lifespan,
)
routes.register_error_handlers(app)
app.include_router(routes.router)


@app.get("/health")
async def health() -> dict[str, Any]:
    payload = routes.health_payload(routes._gateway)
    payload["ts"] = int(time.time())
    return payload
