import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# server/core/config.py -> server
SERVER_ROOT = Path(__file__).resolve().parent.parent

try:
    load_dotenv(dotenv_path=SERVER_ROOT.parent / ".env")
except Exception:
    # Missing or unreadable .env; os.environ may already have values
    pass


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppSettings:
    """Global app settings."""

    database_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./data/academy.db"))
    storage_backend: str = field(default_factory=lambda: os.getenv("STORAGE_BACKEND", "sql"))
    data_root: str = field(default_factory=lambda: os.getenv("DATA_ROOT", "data"))
    legacy_data_root: Optional[str] = field(default_factory=lambda: os.getenv("LEGACY_DATA_ROOT") or None)
    session_days: int = field(default_factory=lambda: int(os.getenv("SESSION_DAYS", "7")))
    bootstrap_password: str = field(default_factory=lambda: os.getenv("BOOTSTRAP_PASSWORD", "123"))
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    login_max_attempts: int = field(default_factory=lambda: int(os.getenv("LOGIN_MAX_ATTEMPTS", "20")))
    login_window_seconds: int = field(default_factory=lambda: int(os.getenv("LOGIN_WINDOW_SECONDS", "300")))
    max_proof_bytes: int = field(default_factory=lambda: int(os.getenv("MAX_PROOF_BYTES", str(5 * 1024 * 1024))))

    def __post_init__(self):
        self.storage_backend = self.storage_backend.strip().lower()
        if self.storage_backend not in ("sql", "file"):
            raise ValueError(f"Unknown STORAGE_BACKEND: {self.storage_backend!r} (expected 'sql' or 'file')")

    @staticmethod
    def _resolve(path_value: str) -> Path:
        base_path = Path(path_value)
        # Relative paths are resolved against the server folder
        if not base_path.is_absolute():
            base_path = SERVER_ROOT / path_value
        return base_path

    @property
    def data_dir(self) -> Path:
        """Returns absolute path to the JSON collections directory."""
        return self._resolve(self.data_root)

    @property
    def legacy_data_dir(self) -> Optional[Path]:
        if not self.legacy_data_root:
            return None
        return self._resolve(self.legacy_data_root)
