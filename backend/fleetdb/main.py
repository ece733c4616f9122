# backend/fleetdb/main.py
import logging
import os
from typing import List

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .database import Base, engine

from .apps.audit.router import router as audit_router
from .apps.cafs.router import permissions_router as caf_permissions_router
from .apps.cafs.router import router as cafs_router
from .apps.incidents.router import router as incidents_router
from .apps.parties.router import router as parties_router
from .apps.violations.router import router as violations_router
from .apps.workflow import TransitionError

logger = logging.getLogger(__name__)


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://localhost:3000",
    ]


def _auto_create_schema() -> bool:
    return os.getenv("FLEETDB_AUTO_CREATE_SCHEMA", "false").lower() in {"1", "true", "yes", "on"}


app = FastAPI(title="Fleet Compliance API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


if _auto_create_schema():
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ensured")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(TransitionError)
async def transition_error_handler(request: Request, exc: TransitionError):
    return JSONResponse(
        status_code=400,
        content={"error": str(exc), "code": exc.code, "detail": exc.detail},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Fleet compliance backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(parties_router)
app.include_router(violations_router)
app.include_router(incidents_router)
app.include_router(cafs_router)
app.include_router(caf_permissions_router)
app.include_router(audit_router)
