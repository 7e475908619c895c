import json
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from .api.router import api_router
from .config import get_settings
from .core.logging import get_logger, setup_logging
from .exceptions import register_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = get_logger(__name__)
    settings = get_settings()
    logger.info("app.startup", env=settings.app_env, page_size=settings.page_size)
    yield
    logger.info("app.shutdown")


setup_logging()

app = FastAPI(
    title="Kubernetes RBAC Graph API",
    description="Kubernetes RBAC compiled into resources, entitlements and grants",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_id_and_envelope(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    # only successful JSON bodies are wrapped; errors already carry the envelope
    if response.status_code >= 400 or "application/json" not in response.headers.get("content-type", ""):
        return response

    body = b""
    async for chunk in response.body_iterator:
        body += chunk
    try:
        payload = json.loads(body)
    except ValueError:
        return Response(content=body, status_code=response.status_code, headers=dict(response.headers))

    wrapped = {"success": True, "data": payload, "request_id": request_id}
    headers = dict(response.headers)
    headers.pop("content-length", None)
    return JSONResponse(status_code=response.status_code, content=wrapped, headers=headers)


register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
