"""
FastAPI app entrypoint.

Notification engine for the blog: notification center, preferences, Web Push
subscriptions, admin broadcast. The digest sweep runs on a background scheduler.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from blognotify.api.routes import admin, notifications, push, settings as settings_routes
from blognotify.config import settings
from blognotify.core.constants import DIGEST_JOB_ID
from blognotify.scheduler.digest_job import run_digest_job
from blognotify.services.deferred import get_deferred

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Scheduler: digest sweep every DIGEST_TICK_MINUTES
_scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.scheduler_enabled:
        _scheduler.add_job(
            run_digest_job,
            "interval",
            minutes=settings.digest_tick_minutes,
            id=DIGEST_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        _scheduler.start()
        app.state.scheduler = _scheduler
        logger.info("Digest sweep scheduled every %s minutes", settings.digest_tick_minutes)
    logger.info("Notification backend ready")
    yield
    if _scheduler.running:
        _scheduler.shutdown(wait=False)
    get_deferred().shutdown(wait=True)


app = FastAPI(title="Blog Notifications", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS env (comma-separated) for the production frontend
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:4173",
    "http://127.0.0.1:4173",
]
if settings.cors_origins:
    _cors_origins.extend(o.strip() for o in settings.cors_origins.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(notifications.router, prefix="/api", tags=["notifications"])
app.include_router(settings_routes.router, prefix="/api", tags=["notification-settings"])
app.include_router(push.router, prefix="/api", tags=["push"])
app.include_router(admin.router, prefix="/api", tags=["admin"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "Blog Notifications API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
