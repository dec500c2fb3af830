"""Application configuration loaded from environment variables.

Uses ``pydantic-settings`` for automatic env-var loading, type coercion,
and ``.env`` file support.  Validates required settings on import -- fails
fast if critical vars are missing outside of tests.
"""

VERSION = "0.1.0"

import sys
import tempfile

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Required var names -- checked after instantiation (not during), so tests
# that leave them blank still work.
# ---------------------------------------------------------------------------
_REQUIRED_VARS: list[str] = [
    "DATABASE_URL",
]


class Settings(BaseSettings):
    """Application settings -- sourced from environment / ``.env`` file.

    Required vars (must be set in production, may be blank in test):
      DATABASE_URL
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- required in production (default empty so tests don't fail) --
    DATABASE_URL: str = ""

    # -- optional with sensible defaults --
    CORS_ORIGINS: list[str] = ["*"]
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # Parent directory for per-build checkouts (<WORKSPACE_ROOT>/<build id>).
    WORKSPACE_ROOT: str = tempfile.gettempdir()

    # Images are tagged <APP_IMAGE_NAME>:<commit sha>; the deploy step
    # relies on the same convention to find them again.
    APP_IMAGE_NAME: str = "myapp"
    DEPLOY_CONTAINER_NAME: str = "testcontainer"

    GIT_BINARY: str = "git"
    DOCKER_BINARY: str = "docker"

    # Upper bound on a single log frame send before the subscriber is dropped
    WS_SEND_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)


settings = Settings()


# Validate at import time -- but only when NOT running under pytest.
if "pytest" not in sys.modules:
    _missing = [v for v in _REQUIRED_VARS if not getattr(settings, v)]
    if _missing:
        print(
            f"[config] FATAL: missing required environment variables: "
            f"{', '.join(_missing)}",
            file=sys.stderr,
        )
        sys.exit(1)
