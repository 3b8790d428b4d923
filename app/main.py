import asyncio
import fcntl
import logging
import os
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.exceptions import AppError
from app.logging_config import setup_logging
from app.routers.auth import router as auth_router
from app.routers.categories import router as categories_router
from app.routers.cron import router as cron_router
from app.routers.notifications import router as notifications_router
from app.routers.system import router as system_router
from app.routers.tags import router as tags_router
from app.routers.tasks import router as tasks_router
from app.routers.users import router as users_router
from app.services.email_worker import email_worker
from app.services.scheduler import setup_scheduler

setup_logging()
logger = logging.getLogger(__name__)


def _acquire_scheduler_lock():
    """Only the first gunicorn worker to grab the file lock runs the scheduler."""
    lock_fd = open(settings.SCHEDULER_LOCK_FILE, "w")
    try:
        fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        lock_fd.close()
        return None
    return lock_fd


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    lock_fd = None
    if settings.SCHEDULER_ENABLED:
        lock_fd = _acquire_scheduler_lock()
        if lock_fd:
            logger.info("[PROCESS %s] Acquired scheduler lock. Starting APScheduler...", os.getpid())
            scheduler = setup_scheduler()
        else:
            logger.info("[PROCESS %s] Another worker is running the scheduler. Skipping.", os.getpid())

    # asyncio.Queue is per process, so every worker drains its own queue
    worker_task = asyncio.create_task(email_worker())

    yield

    if scheduler:
        scheduler.shutdown(wait=True)
    if lock_fd:
        fcntl.flock(lock_fd, fcntl.LOCK_UN)
        lock_fd.close()

    worker_task.cancel()
    try:
        await worker_task
    except asyncio.CancelledError:
        logger.info("[WORKER] Email worker shut down.")


app = FastAPI(
    lifespan=lifespan,
    title="DueSync API",
    description="Personal tasks with categories, tags, recurrence and Google Calendar sync",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _cors_headers(request: Request) -> dict[str, str]:
    """CORS headers for responses built outside CORSMiddleware."""
    origin = request.headers.get("origin")
    if not origin or not re.fullmatch(settings.CORS_ORIGIN_REGEX, origin):
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.error, exc.details)
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_body()),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [{k: v for k, v in err.items() if k not in ("ctx", "url")} for err in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder({"error": "Validation error", "details": details}),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal Server Error", "details": str(exc)},
        headers=_cors_headers(request),
    )


app.include_router(system_router)
app.include_router(auth_router)
app.include_router(categories_router)
app.include_router(tags_router)
app.include_router(tasks_router)
app.include_router(notifications_router)
app.include_router(users_router)
app.include_router(cron_router)
