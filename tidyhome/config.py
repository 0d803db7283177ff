import os


def _default_sqlite_url() -> str:
    data_dir = "/data"
    if os.path.isdir(data_dir):
        return f"sqlite:////{os.path.join(data_dir.lstrip('/'), 'tidyhome.db')}"
    return "sqlite:///tidyhome.db"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


DATABASE_URL = os.getenv("DATABASE_URL", _default_sqlite_url())

SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-secret")
SESSION_COOKIE = os.getenv("SESSION_COOKIE", "tidyhome_session")
SESSION_MAX_AGE = _env_int("SESSION_MAX_AGE", 14 * 24 * 60 * 60)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

TASK_PAGE_LIMIT = _env_int("TASK_PAGE_LIMIT", 50)
UPCOMING_LIMIT = _env_int("UPCOMING_LIMIT", 10)

HOST = os.getenv("HOST", "127.0.0.1")
PORT = _env_int("PORT", 8000)
