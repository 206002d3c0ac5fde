import logging
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")

APP_NAME = "Bar Management API"

# "local" keeps everything in a JSON file (or memory), "mongo" uses DATABASE_URL
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local").lower()
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "bar_management")
LOCAL_STORE_PATH = os.getenv("LOCAL_STORE_PATH", str(BASE_DIR / "data" / "bar_store.json"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "10"))
CURRENCY = os.getenv("CURRENCY", "FCFA")
PORT = int(os.getenv("PORT", "8000"))
SEED_CATALOG = os.getenv("SEED_CATALOG", "1") not in ("0", "false", "no")
# days of opening stock kept for the export
STOCK_SNAPSHOT_DAYS = int(os.getenv("STOCK_SNAPSHOT_DAYS", "31"))

MANAGER_ROLES = ("patron", "gerante1", "gerante2")
DEFAULT_ACCESS_CODES = {
    "patron": "123456",
    "gerante1": "111111",
    "gerante2": "222222",
}
MANAGER_NAMES = {
    "patron": "Patron",
    "gerante1": "Gérante 1",
    "gerante2": "Gérante 2",
}

TEMPLATES_DIR = BASE_DIR / "templates"


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
