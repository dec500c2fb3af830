"""tinyci -- FastAPI application entry point."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tinyci.api.routers.builds import router as builds_router
from tinyci.api.routers.deploy import router as deploy_router
from tinyci.api.routers.health import router as health_router
from tinyci.api.routers.logs import router as logs_router
from tinyci.api.routers.projects import router as projects_router
from tinyci.config import VERSION, settings
from tinyci.log_registry import LogSinkRegistry
from tinyci.middleware import RequestIDMiddleware
from tinyci.middleware.access_log import AccessLogMiddleware
from tinyci.middleware.exception_handler import setup_exception_handlers
from tinyci.repos import build_repo
from tinyci.repos.db import close_pool, ensure_schema
from tinyci.services.build_service import BuildPipeline

logger = logging.getLogger(__name__)


class _ColorFormatter(logging.Formatter):
    """ANSI-colored log formatter for terminal output."""

    _COLORS = {
        logging.DEBUG:    "\033[36m",     # cyan
        logging.INFO:     "\033[32m",     # green
        logging.WARNING:  "\033[33m",     # yellow
        logging.ERROR:    "\033[31m",     # red
        logging.CRITICAL: "\033[1;31m",   # bold red
    }
    _RESET = "\033[0m"
    _DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self._COLORS.get(record.levelno, "")
        ts = self.formatTime(record, "%H:%M:%S")
        name = record.name.split(".")[-1][:16]
        msg = record.getMessage()
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"
        return (
            f"{self._DIM}{ts}{self._RESET} "
            f"{color}{record.levelname:<8s}{self._RESET} "
            f"{self._DIM}[{name:>16s}]{self._RESET} "
            f"{color}{msg}{self._RESET}"
        )


class _PlainFormatter(logging.Formatter):
    """Plain-text formatter for file logs (no ANSI codes)."""

    def format(self, record: logging.LogRecord) -> str:
        ts = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        name = record.name.split(".")[-1][:16]
        msg = record.getMessage()
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"
        return f"{ts} {record.levelname:<8s} [{name:>16s}] {msg}"


def configure_logging() -> None:
    """Install the stderr (and optional rotating file) handlers on the root logger."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_ColorFormatter())
    handlers: list[logging.Handler] = [handler]

    if settings.LOG_FILE:
        from logging.handlers import RotatingFileHandler
        from pathlib import Path

        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_path),
            maxBytes=10 * 1024 * 1024,  # 10 MB per file
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(_PlainFormatter())
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers)

    # uvicorn's own access log duplicates tinyci.access
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Application lifespan: startup and shutdown hooks."""
    configure_logging()

    if "pytest" not in sys.modules:
        try:
            await ensure_schema()
            logger.info("Database schema ready.")
        except Exception as exc:
            logger.warning("DB unavailable at startup (%s) -- will retry on first request.", exc)
    yield
    # Running builds are cancelled first so their workspaces are removed
    # and their log viewers closed before the pool goes away.
    await application.state.pipeline.shutdown()
    await close_pool()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="tinyci",
        version=VERSION,
        description="Minimal build-and-deploy CI server",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    registry = LogSinkRegistry()
    application.state.log_registry = registry
    application.state.pipeline = BuildPipeline(registry, build_repo)

    setup_exception_handlers(application)

    application.add_middleware(AccessLogMiddleware)
    application.add_middleware(RequestIDMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Authorization"],
    )

    application.include_router(health_router)
    application.include_router(builds_router)
    application.include_router(logs_router)
    application.include_router(deploy_router)
    application.include_router(projects_router)
    return application


app = create_app()
