from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.requests import Request
from kyc_workflow.api.auth_routes import router as auth_router
from kyc_workflow.api.document_routes import router as document_router
from kyc_workflow.api.verification_routes import router as verification_router
from kyc_workflow.api.admin_routes import router as admin_router
from kyc_workflow.api.audit_routes import router as audit_router
from kyc_workflow.api.notification_routes import router as notification_router
from kyc_workflow.api.branch_routes import router as branch_router
from kyc_workflow.api.source_person_routes import router as source_person_router
from contextlib import asynccontextmanager
from kyc_workflow.database.connection import init_db
from kyc_workflow.core import settings
from kyc_workflow.core.errors import WorkflowError
from kyc_workflow.services.notification_service import notification_service
from kyc_workflow.workers.temp_file_sweeper import run_temp_sweeper
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException
from fastapi.responses import JSONResponse
import asyncio
import logging
import traceback


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds security headers to every non-OPTIONS response.

    OPTIONS requests are left to CORSMiddleware, which is registered last
    and therefore runs first; answering them here would drop the
    Access-Control-* headers browsers need for preflight.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        if request.method != "OPTIONS":
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["X-XSS-Protection"] = "1; mode=block"
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
            response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    notification_service.start()
    sweeper = asyncio.create_task(run_temp_sweeper())
    yield
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    await notification_service.stop()

app = FastAPI(
    title="KYC Verification Workflow",
    description="Document registry, field verification records and KYC decisions",
    version="1.0.0",
    lifespan=lifespan
)


# Global exception handlers to return structured JSON and log tracebacks
logger = logging.getLogger("server_exception_handler")


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    # Typed errors raised by the services carry their own status code
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    body = {
        "error": {
            "code": "http_error",
            "message": str(exc.detail) if exc.detail else str(exc.status_code),
            "status_code": exc.status_code
        }
    }
    logger.warning(f"HTTPException handled: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Validation errors from FastAPI/Pydantic
    body = {
        "error": {
            "code": "validation_error",
            "message": "Request validation failed",
            "details": jsonable_errors(exc)
        }
    }
    logger.warning(f"Validation error: {exc.errors()}")
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    # Catch-all: log the traceback, hide it from the client
    tb = traceback.format_exc()
    logger.error(f"Unhandled exception: {str(exc)}\n{tb}")
    body = {
        "error": {
            "code": "internal_server_error",
            "message": "An unexpected error occurred",
        }
    }
    return JSONResponse(status_code=500, content=body)


def jsonable_errors(exc: RequestValidationError):
    return [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]


# Support comma-separated CLIENT_URL values (e.g. "http://localhost:3000,http://localhost:3001")
raw_origins = settings.CLIENT_URL or ""
allowed_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

if not allowed_origins or any("localhost" in origin for origin in allowed_origins):
    allowed_origins = list(set(allowed_origins + ["http://localhost:3000", "http://localhost:3001"]))

logger.info(f"CORS allowed origins: {allowed_origins}")

# Starlette runs middleware LIFO: security headers are added first so that
# CORSMiddleware, added last, sees preflight requests first.
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
        "Accept-Language",
        "Content-Language",
        "X-Requested-With",
        "Cache-Control",
        "If-Modified-Since",
        "If-None-Match",
        "Pragma",
    ],
    expose_headers=["Content-Type", "Content-Disposition", "X-Skipped-Files"],
    max_age=3600,
)

# Include routers
app.include_router(auth_router)
app.include_router(document_router)
app.include_router(verification_router)
app.include_router(admin_router)
app.include_router(audit_router)
app.include_router(notification_router)
app.include_router(branch_router)
app.include_router(source_person_router)

@app.get("/")
async def root():
    return {"message": "KYC Verification Workflow API is running!"}

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "message": "API is running",
        "websocket_connections": notification_service.manager.connection_count(),
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
