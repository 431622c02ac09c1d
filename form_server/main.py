"""
Form Server — Airtable-backed form builder API.
Login with Airtable (PKCE), browse bases/tables, build forms with conditional questions,
accept submissions and export responses.
"""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from form_server.auth_routes import router as auth_router
from form_server.bases import router as bases_router
from form_server.config import require_provider_settings
from form_server.database import init_db
from form_server.errors import FormServerError, SchemaValidationFailure
from form_server.forms import router as forms_router
from form_server.services import build_provider, configure_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check provider settings, create tables, build the session cache, Airtable client and token broker."""
    require_provider_settings()
    init_db()
    http = httpx.Client()
    configure_services(app, build_provider(http))
    try:
        yield
    finally:
        http.close()


app = FastAPI(title="Form Server", version="0.1.0", lifespan=lifespan)
app.include_router(auth_router, tags=["auth"])
app.include_router(bases_router, tags=["bases"])
app.include_router(forms_router, tags=["forms"])


@app.exception_handler(FormServerError)
async def form_server_error_handler(request: Request, exc: FormServerError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.error)
    content = {"error": exc.error, "error_description": exc.message}
    if isinstance(exc, SchemaValidationFailure):
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content={"detail": content})


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "form_server"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "form_server.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
