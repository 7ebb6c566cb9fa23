import logging
import subprocess
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path

import click
import uvicorn
from alembic import command
from alembic.config import Config
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.database import Base, SessionLocal, engine
from app.core.decorator import DBException
from app.core.init import initialize_application
from app.core.limiter import custom_rate_limit_exceeded_handler, limiter
from app.core.schedular import shutdown_scheduler, start_scheduler, sweep_stale_progress
from app.core.session import create_session_store, new_session_id
from app.models import *
from app.routers import routes

BASE_DIR = Path(__file__).parent
LOGS_DIR = BASE_DIR / settings.log_dir
LOGS_DIR.mkdir(parents=True, exist_ok=True)


# ============================================================================
# Logging Configuration
# ============================================================================
def setup_logging():
    """Log to stdout and to logs/app.log; DEBUG only when settings.debug is on."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(LOGS_DIR / "app.log", mode="a", encoding="utf-8"),
        ],
        force=True,
    )

    for noisy in ("sqlalchemy.engine", "uvicorn.access", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logging.getLogger(__name__)


logger = setup_logging()


# ============================================================================
# Application Lifespan
# ============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create tables, close attempts left over from the last run, open the
    session store and start the progress sweep. Shutdown undoes the last two.
    """
    logger.info(f"🚀 Starting {settings.app_name} v{settings.app_version}")
    scheduler = None

    try:
        Base.metadata.create_all(bind=engine)

        db = SessionLocal()
        try:
            initialize_application(db)
        finally:
            db.close()

        app.state.session_store = create_session_store()
        if settings.scheduler_enabled:
            scheduler = start_scheduler()
    except Exception as e:
        logger.error(f"✗ Startup failed: {e}", exc_info=True)
        raise

    logger.info(
        f"✓ Ready (sessions: {settings.session_driver}, "
        f"scheduler: {'on' if scheduler else 'off'})"
    )

    yield

    shutdown_scheduler(scheduler)
    app.state.session_store.close()
    logger.info("✓ Shutdown complete")


# ============================================================================
# FastAPI Application
# ============================================================================
app = FastAPI(
    title=settings.app_name,
    description=settings.app_description,
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter


# ============================================================================
# Middleware
# ============================================================================
@app.middleware("http")
async def attach_session(request: Request, call_next):
    """
    Every request gets a session id, from the cookie or freshly minted.
    Registered first so it sits innermost and redirects still carry the cookie.
    """
    session_id = request.cookies.get(settings.session_cookie_name)
    minted = not session_id
    if minted:
        session_id = new_session_id()
    request.state.session_id = session_id

    response = await call_next(request)

    if minted:
        response.set_cookie(
            key=settings.session_cookie_name,
            value=session_id,
            max_age=settings.session_ttl_seconds,
            httponly=True,
            samesite="lax",
            secure=settings.production,
        )
    return response


@app.middleware("http")
async def trace_request(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID", str(time.time()))
    started = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = f"{time.perf_counter() - started:.4f}"
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================
@app.exception_handler(DBException)
async def db_exception_handler(request: Request, exc: DBException):
    logger.error(f"{exc.error_type} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "type": exc.error_type},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected request to {request.url.path}: {exc.errors()}")
    # ctx may hold the raised ValueError itself
    details = [
        {k: str(v) if k == "ctx" else v for k, v in error.items()}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={"error": "Validation error", "details": details},
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Unhandled {type(exc).__name__} on {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Database error occurred", "type": type(exc).__name__},
    )


app.add_exception_handler(RateLimitExceeded, custom_rate_limit_exceeded_handler)


# ============================================================================
# Health Check Endpoints
# ============================================================================
@app.get("/")
async def root():
    return {
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": "production" if settings.production else "development",
    }


@app.get("/health")
@limiter.limit("10/minute")
def health_check(request: Request):
    """Database and session store reachability."""
    checks = {}

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Health check: database unreachable: {e}")
        checks["database"] = "unhealthy"
    finally:
        db.close()

    probe = f"health-{new_session_id()}"
    try:
        store = request.app.state.session_store
        store.save(probe, {})
        store.delete(probe)
        checks["sessions"] = "healthy"
    except Exception as e:
        logger.error(f"Health check: session store unreachable: {e}")
        checks["sessions"] = "unhealthy"

    healthy = all(state == "healthy" for state in checks.values())
    return {
        "status": "healthy" if healthy else "degraded",
        "timestamp": time.time(),
        "session_driver": settings.session_driver,
        **checks,
    }


for router in routes:
    app.include_router(router)


# ============================================================================
# CLI Commands
# ============================================================================
@click.group()
def cli():
    """Practice exam server management."""


def run_migrations():
    command.upgrade(Config(str(BASE_DIR / "alembic.ini")), "head")
    logger.info("✓ Migrations applied")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind the server to")
@click.option("--port", default=8000, help="Port to run the server on")
@click.option("--reload", is_flag=True, help="Enable auto-reload (development only)")
def dev(host: str, port: int, reload: bool):
    """Run development server with Uvicorn."""
    logger.info(f"Development server on http://{host}:{port} (reload={reload})")
    uvicorn.run("main:app", host=host, port=port, reload=reload, log_level="debug")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Host to bind the server to")
@click.option("--port", default=8000, help="Port to run the server on")
@click.option(
    "--workers", default=settings.server_workers, help="Number of worker processes"
)
def prod(host: str, port: int, workers: int):
    """Apply migrations, then serve with Gunicorn + Uvicorn workers."""
    if workers > 1 and settings.session_driver == "memory":
        # Each worker would hold its own copy of every student's answers
        raise click.ClickException(
            "SESSION_DRIVER=memory only works with --workers 1; use redis"
        )

    try:
        run_migrations()
    except Exception as e:
        raise click.ClickException(f"Migration failed: {e}")

    cmd = [
        "gunicorn",
        "main:app",
        "--worker-class", "uvicorn.workers.UvicornWorker",
        "--workers", str(workers),
        "--bind", f"{host}:{port}",
        "--access-logfile", "-",
        "--error-logfile", "-",
        "--timeout", str(settings.server_timeout_seconds),
        "--graceful-timeout", "30",
    ]
    logger.info(f"Production server on {host}:{port} with {workers} workers")

    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        raise click.ClickException(f"Gunicorn exited with {e.returncode}")
    except FileNotFoundError:
        raise click.ClickException("Gunicorn not installed")


@cli.command()
def migrate():
    """Apply pending Alembic migrations."""
    run_migrations()


@cli.command("sweep-progress")
def sweep_progress():
    """Mark stale in-progress attempts as exited, once."""
    exited = sweep_stale_progress()
    click.echo(f"Marked {exited} stale attempts as exited")


@cli.command()
def info():
    """Display application information."""
    click.echo(f"Application: {settings.app_name} v{settings.app_version}")
    click.echo(f"Debug Mode: {settings.debug}")
    click.echo(f"Session Driver: {settings.session_driver}")
    click.echo(f"Scheduler: {'enabled' if settings.scheduler_enabled else 'disabled'}")
    click.echo(f"Logs Directory: {LOGS_DIR.absolute()}")


if __name__ == "__main__":
    cli()
