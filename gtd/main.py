import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gtd.core.config import settings
from gtd.core.database import engine, Base
from gtd.core.errors import GTDError
from gtd.models import user, project, task, tag, time_entry, task_status_history, note, journal, saved_search  # noqa: F401
from gtd.routers import health, tasks, projects, notes, journals, tags, analytics, search, scheduler
from gtd.routers import settings as settings_router
from gtd.services.scheduler import task_scheduler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Init DB
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.SCHEDULER_ENABLED:
        task_scheduler.start()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")
    yield
    if task_scheduler.running:
        task_scheduler.stop()


app = FastAPI(
    title="GTD API",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(GTDError)
async def gtd_error_handler(request: Request, exc: GTDError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Routes
app.include_router(health.router, prefix="/health")
app.include_router(tasks.router)
app.include_router(projects.router)
app.include_router(notes.router)
app.include_router(journals.router)
app.include_router(tags.router)
app.include_router(settings_router.router)
app.include_router(analytics.router)
app.include_router(search.router)
app.include_router(scheduler.router)
