import os

# Defaults for LOCAL DEV. Docker will override via ENV.
# postgresql+psycopg2://..., mysql+pymysql://... or sqlite:///...
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./recipebook.db")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

SEARCH_TIMEOUT_SECONDS = float(os.getenv("SEARCH_TIMEOUT_SECONDS", "15"))
ID_ALLOCATION_MAX_ATTEMPTS = int(os.getenv("ID_ALLOCATION_MAX_ATTEMPTS", "100"))
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "15"))
MAX_PAGE_SIZE = 100

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": LOG_LEVEL,
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "recipebook": {"level": LOG_LEVEL, "handlers": ["console"], "propagate": False},
    },
}
