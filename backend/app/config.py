import os
from dotenv import load_dotenv

# Load .env from project root
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./canvas.db")
DEFAULT_PROJECT_ID = os.getenv("DEFAULT_PROJECT_ID", "default")

# History
HISTORY_MAX_SIZE = int(os.getenv("HISTORY_MAX_SIZE", "50"))

# Autosave
AUTOSAVE_DELAY_MS = int(os.getenv("AUTOSAVE_DELAY_MS", "2000"))
AUTOSAVE_ENABLED = _env_bool("AUTOSAVE_ENABLED", True)

# Persistence
SAVE_RETRIES = int(os.getenv("SAVE_RETRIES", "3"))
SAVE_VALIDATE = _env_bool("SAVE_VALIDATE", True)
SAVE_COMPRESS = _env_bool("SAVE_COMPRESS", True)
SAVE_BACKUP = _env_bool("SAVE_BACKUP", True)
MAX_BACKUPS = int(os.getenv("MAX_BACKUPS", "5"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
