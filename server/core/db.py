import logging
from pathlib import Path
from urllib.parse import urlparse

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from core import models  # noqa: F401  (registers tables on SQLModel.metadata)
from core.config import SERVER_ROOT, AppSettings

logger = logging.getLogger(__name__)


def _prepare_sqlite_url(url: str) -> str:
    """Absolute sqlite file path with its directory created; falls back to server/data/ when the directory is not writable."""
    if not url.startswith("sqlite"):
        return url

    parsed = urlparse(url)
    path = parsed.path

    # sqlite:// (no path) or sqlite:///:memory:
    if path in ("", "/", "/:memory:"):
        return url

    # sqlite:///./data/academy.db -> ./data/academy.db
    # sqlite:////abs/path.db      -> /abs/path.db
    file_path = Path(path[1:]) if path.startswith("/") else Path(path)

    # Relative paths are resolved against the server folder
    if not file_path.is_absolute():
        if file_path.parts and file_path.parts[0] == ".":
            file_path = Path(*file_path.parts[1:])
        file_path = SERVER_ROOT / file_path

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
    except (PermissionError, OSError):
        # Read-only or permission-denied: fallback to server data directory
        fallback = SERVER_ROOT / "data" / file_path.name
        fallback.parent.mkdir(parents=True, exist_ok=True)
        logger.warning(f"⚠️ Cannot create {file_path.parent}, using {fallback}")
        file_path = fallback

    return f"sqlite:///{file_path}"


def build_engine(settings: AppSettings) -> Engine:
    url = _prepare_sqlite_url(settings.database_url)
    connect_args = {}
    if url.startswith("sqlite"):
        # request handlers run in a threadpool
        connect_args["check_same_thread"] = False
    else:
        # postgres:// is what most hosting providers hand out
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=not url.startswith("sqlite"),
        connect_args=connect_args,
    )


def init_db(engine: Engine) -> None:
    """Create tables if they do not exist."""
    SQLModel.metadata.create_all(engine)
    logger.info(f"[DB] ✅ Tables ready ({engine.dialect.name})")
