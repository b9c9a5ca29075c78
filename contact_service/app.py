"""Contact Service - FastAPI server for the website contact form."""

import logging
from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from contact_service.shared.contact.config import ContactSettings
from contact_service.shared.contact.email_utils import ContactNotifier, SMTPMailTransport
from contact_service.shared.contact.rate_limit import RateLimitStore, SlidingWindowRateLimiter
from contact_service.shared.contact.routes import router as contact_router

# Load environment variables from .env file (for local development)
load_dotenv()

settings = ContactSettings.from_env()

app = FastAPI(
    title="Contact Service",
    description="Website contact form endpoint with spam checks, rate limiting and email delivery",
    version="0.1.0"
)

# Messages for status codes raised by routing itself rather than by a route
_DEFAULT_ERRORS = {
    status.HTTP_404_NOT_FOUND: "Not found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "Method not allowed",
}


@app.on_event("startup")
async def startup_event():
    """Create the shared rate limit store and mail transport once per process."""
    store = RateLimitStore(settings.rate_limit_file, lock_timeout=settings.rate_limit_lock_timeout)
    app.state.contact_settings = settings
    app.state.contact_rate_limiter = SlidingWindowRateLimiter(
        store,
        window_seconds=settings.rate_limit_window_seconds,
        max_requests=settings.rate_limit_max_requests,
    )
    app.state.contact_notifier = ContactNotifier(SMTPMailTransport(settings), settings)
    logging.info(f"Contact service initialized (rate limit store: {settings.rate_limit_file})")


app.include_router(contact_router)

# CORS configuration - must be added before exception handlers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=False,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


def _cors_headers(request: Request) -> dict:
    """CORS headers for error responses that bypass the middleware."""
    headers = {}
    origin = request.headers.get("origin")
    if origin and origin in settings.cors_allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return headers


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors (including FastAPI's) as {ok: false, error: ...}."""
    if isinstance(exc.detail, str) and exc.detail and exc.status_code not in _DEFAULT_ERRORS:
        error = exc.detail
    else:
        error = _DEFAULT_ERRORS.get(exc.status_code, str(exc.detail))

    headers = _cors_headers(request)
    if getattr(exc, "headers", None):
        headers.update(exc.headers)

    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": error},
        headers=headers
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors like any other bad submission."""
    logging.info(f"Rejected malformed request: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"ok": False, "error": "Invalid request."},
        headers=_cors_headers(request)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Every outcome gets a definitive ok value, even unexpected failures."""
    logging.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"ok": False, "error": "Internal server error"},
        headers=_cors_headers(request)
    )


@app.get("/")
async def root():
    return {"message": "Contact Service API is running", "status": "ok"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
