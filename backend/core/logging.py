from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from core.config import BACKEND_DIR


LOG_FORMAT = "%(asctime)s %(levelname)s [%(processName)s] %(name)s %(message)s"
LOG_FILE = Path(BACKEND_DIR) / "logs" / "scheduler.log"


def setup_logging(*, environment: str) -> None:
    """Configure the root logger once per process.

    The API process and every schedule worker call this; the worker's process name
    tags its lines. Production also writes to a rotating file under `backend/logs`.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    production = (environment or "").strip().lower() == "production"
    level = logging.INFO if production else logging.DEBUG

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if production:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(LOG_FILE, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
        )

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    for handler in handlers:
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers)

    # SQL echo is too chatty at DEBUG when a solve commits hundreds of rows.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
