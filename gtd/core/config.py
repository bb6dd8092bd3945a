from os import getenv


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    DATABASE_URL = getenv("DATABASE_URL", "postgresql+psycopg://gtd:gtd@db:5432/gtd")

    # secret partagé avec le fournisseur d'auth externe
    JWT_SECRET = getenv("JWT_SECRET", "dev-secret-change-in-prod")
    JWT_EXPIRE_MIN = int(getenv("JWT_EXPIRE_MIN", "15"))

    LOG_LEVEL = getenv("LOG_LEVEL", "INFO").upper()

    SCHEDULER_ENABLED = _as_bool(getenv("SCHEDULER_ENABLED", "true"))
    SCHEDULER_POLL_SECONDS = int(getenv("SCHEDULER_POLL_SECONDS", "60"))

    DEFAULT_JOURNAL_TEMPLATE = getenv("DEFAULT_JOURNAL_TEMPLATE", "Default template")
    DEFAULT_SCHEDULE_TIME = getenv("DEFAULT_SCHEDULE_TIME", "23:55")

settings = Settings()
