import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from clarity.api.middleware import cors_middleware
from clarity.api.routes.billing import router as billing_router
from clarity.api.routes.rewrite import router as rewrite_router
from clarity.api.routes.webhooks import router as webhooks_router
from clarity.core.config import settings
from clarity.core.errors import ClarityError

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    level = settings.log_level.upper()
    logging.basicConfig(level=level)
    logging.getLogger("clarity").setLevel(level)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    yield


app = FastAPI(title="ClarityText API", lifespan=lifespan)
app.middleware("http")(cors_middleware)
app.include_router(rewrite_router, prefix=settings.api_prefix)
app.include_router(billing_router, prefix=settings.api_prefix)
app.include_router(webhooks_router, prefix=settings.api_prefix)


@app.exception_handler(ClarityError)
async def clarity_error_handler(request: Request, exc: ClarityError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.error)
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
