from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import os
import uuid
import time
import tempfile
from logging_config import setup_logging
from config import LOG_DIR, LOG_LEVEL, TEST_MODE

# Initialize logging system with environment-aware defaults
log_dir = str(LOG_DIR)
try:
    logger = setup_logging(log_dir=log_dir, log_level=LOG_LEVEL)
except (PermissionError, OSError) as e:
    # Fallback to temp directory when the log directory is not writable
    log_dir = tempfile.mkdtemp()
    logger = setup_logging(log_dir=log_dir, log_level=LOG_LEVEL)
    logger.warning(
        f"Failed to create log directory at {LOG_DIR}, "
        f"using temporary directory: {log_dir}",
        extra={"original_error": str(e)}
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - stop replay clocks on shutdown."""
    logger.info("Shot replay server starting", extra={"pid": os.getpid(), "test_mode": TEST_MODE})

    yield

    closed = replay.close_all_sessions()
    logger.info("Replay sessions closed", extra={"session_count": closed})


app = FastAPI(lifespan=lifespan)

# Import route modules
from api.routes import shots, replay


# Middleware for request logging and tracking
def _request_context(request: Request, request_id: str, **extra) -> dict:
    return {
        "request_id": request_id,
        "endpoint": request.url.path,
        "method": request.method,
        **extra,
    }


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Tag each request with a request_id and log its outcome and duration."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    route = f"{request.method} {request.url.path}"
    started = time.perf_counter()

    logger.info(
        f"Incoming request: {route}",
        extra=_request_context(
            request, request_id,
            client_ip=request.client.host if request.client else "unknown",
            user_agent=request.headers.get("user-agent", "unknown"),
        )
    )

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"Request failed: {route} - {e}",
            exc_info=True,
            extra=_request_context(
                request, request_id,
                duration_ms=int((time.perf_counter() - started) * 1000),
                error_type=type(e).__name__,
            )
        )
        raise

    logger.info(
        f"Request completed: {route} - {response.status_code}",
        extra=_request_context(
            request, request_id,
            status_code=response.status_code,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
    )
    return response


# Configure CORS middleware to allow web app interactions
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(shots.router)
app.include_router(replay.router)


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}
