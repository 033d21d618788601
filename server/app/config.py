import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+pysqlite:///./ledger.db")

SECRET_KEY = os.getenv("SECRET_KEY", "ledger-dev-secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 12)))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
    if origin.strip()
]

# A borrow that leaves the pool at or below this quantity notifies tenant admins.
LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "0"))


def env_name() -> str:
    return os.getenv("ENV", "production").lower()


def allow_dev_reset() -> bool:
    return os.getenv("ALLOW_DEV_RESET", "false").lower() in {"1", "true", "yes"}
