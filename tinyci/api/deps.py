"""Request dependencies -- hand routers the app-wide pipeline and log registry."""

from starlette.requests import HTTPConnection

from tinyci.log_registry import LogSinkRegistry
from tinyci.services.build_service import BuildPipeline


def get_pipeline(conn: HTTPConnection) -> BuildPipeline:
    return conn.app.state.pipeline


def get_log_registry(conn: HTTPConnection) -> LogSinkRegistry:
    """Works for both HTTP requests and WebSocket connections."""
    return conn.app.state.log_registry
