import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DATA_DIR = Path(os.getenv("LYRIC_TYPER_DATA_DIR", str(BASE_DIR / "data")))

LYRICS_DB_PATH = Path(os.getenv("LYRICS_DB_PATH", str(DATA_DIR / "lyrics_cache.db")))
HISTORY_PATH = Path(
    os.getenv("PRACTICE_HISTORY_PATH", str(DATA_DIR / "typing_practice_storage.json"))
)

HISTORY_MAX = 50
RANDOM_SONGS_LIMIT = 6

GEMINI_API_KEY = str(os.getenv("GEMINI_API_KEY", "") or "").strip()
GEMINI_MODEL = str(os.getenv("GEMINI_MODEL", "gemini-2.5-flash") or "gemini-2.5-flash").strip()
GEMINI_BASE_URL = str(
    os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
    or "https://generativelanguage.googleapis.com/v1beta"
).rstrip("/")
GEMINI_TIMEOUT_SEC = max(1.0, float(os.getenv("GEMINI_TIMEOUT_SEC", "60") or 60))

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", 5000))

DEBUG_LOG = str(os.getenv("LYRIC_TYPER_DEBUG_LOG", "0") or "0").strip().lower() in {
    "1",
    "true",
    "yes",
    "y",
    "on",
}
