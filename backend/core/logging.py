from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from core.config import BACKEND_DIR


# Engine modules that log every saga step at DEBUG.
_ENGINE_LOGGERS = (
    "services.reconciliation",
    "services.conflicts",
    "services.flex",
    "services.sub_contacts",
    "services.sub_assignments",
    "services.coverage",
)


def _resolve_level(env: str, level_name: str | None) -> int:
    if level_name:
        resolved = logging.getLevelName(level_name.strip().upper())
        if isinstance(resolved, int):
            return resolved
    return logging.INFO if env == "production" else logging.DEBUG


def setup_logging(*, environment: str, level_name: str | None = None) -> None:
    """Configure application logging.

    Development logs to the console at DEBUG. Production adds a rotating
    file under ``backend/logs`` and logs at INFO. ``level_name`` (LOG_LEVEL)
    overrides either default.

    Safe to call multiple times (won't double-add handlers).
    """

    root = logging.getLogger()
    if root.handlers:
        return

    env = (environment or "development").lower().strip()
    level = _resolve_level(env, level_name)

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    handlers: list[logging.Handler] = []

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    handlers.append(console)

    if env == "production":
        logs_dir = Path(BACKEND_DIR) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            logs_dir / "staffing.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    for name in _ENGINE_LOGGERS:
        logging.getLogger(name).setLevel(level)
    # SQL echo is far too chatty at DEBUG.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
