import logging
from contextlib import asynccontextmanager
from os import getenv

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .config import ServerSettings
from .errors import ProxyError
from .files import serve_files
from .proxy import forward
from .routing import FileServe, Forward, load_rules

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown logic."""
    #---- Startup ----
    # The CLI (or a test) may have set these already
    if not hasattr(app.state, 'rules'):
        app.state.rules = load_rules(getenv('STATIC_HOST_CONFIG'))

    if not hasattr(app.state, 'http_client'):
        settings = ServerSettings.from_env()
        app.state.http_client = httpx.AsyncClient(timeout=settings.proxy_timeout)

    logger.info('serving %d rules: %r', len(app.state.rules), app.state.rules)

    try:
        yield
    finally:
        #---- Shutdown ----
        if hasattr(app.state, 'http_client'):
            await app.state.http_client.aclose()

application = FastAPI(lifespan=lifespan)


@application.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    return JSONResponse(status_code=502, content={'detail': f'Upstream request failed: {exc}'})


def raw_request_path(request: Request) -> str:
    """Request path as sent by the client, percent-escapes intact."""
    raw_path = request.scope.get("raw_path")
    if raw_path is None:
        return request.url.path
    return raw_path.decode("latin-1")


@application.api_route(
    path="/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"],
)
async def dispatch(path: str, request: Request):
    raw_path = raw_request_path(request)
    outcome = request.app.state.rules.dispatch(raw_path, request.url.query)

    if isinstance(outcome, Forward):
        return await forward(request.app.state.http_client, request, outcome)
    if isinstance(outcome, FileServe):
        return await serve_files(outcome, raw_path, request.url.query, request.method)

    raise HTTPException(status_code=404, detail="No route found")
