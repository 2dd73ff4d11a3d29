import os
from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "info")

RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))
RATE_LIMIT_WINDOW_MS = int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000"))
RATE_LIMIT_SWEEP_INTERVAL_MS = int(os.getenv("RATE_LIMIT_SWEEP_INTERVAL_MS", "300000"))

FB_SCRAPE_DELAY_MS = int(os.getenv("FB_SCRAPE_DELAY_MS", "3000"))
SCRAPE_TIMEOUT_SEC = int(os.getenv("SCRAPE_TIMEOUT_SEC", "35"))

BG_REFRESH_ENABLED = os.getenv("BG_REFRESH_ENABLED", "true").lower() == "true"
BG_REFRESH_INTERVAL_MS = int(os.getenv("BG_REFRESH_INTERVAL_MS", "3600000"))
BG_REFRESH_BEFORE_EXPIRY_HOURS = int(os.getenv("BG_REFRESH_BEFORE_EXPIRY_HOURS", "2"))
BG_REFRESH_BATCH_SIZE = int(os.getenv("BG_REFRESH_BATCH_SIZE", "5"))
BG_REFRESH_ITEM_DELAY_MS = int(os.getenv("BG_REFRESH_ITEM_DELAY_MS", "5000"))

URL_EXPIRY_FALLBACK_HOURS = int(os.getenv("URL_EXPIRY_FALLBACK_HOURS", "24"))
URL_PROBE_ENABLED = os.getenv("URL_PROBE_ENABLED", "true").lower() == "true"
URL_PROBE_TIMEOUT_SEC = int(os.getenv("URL_PROBE_TIMEOUT_SEC", "5"))

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/cinedrive")
MONGO_DB = os.getenv("MONGO_DB", "cinedrive")
MOVIES_COLLECTION = os.getenv("MOVIES_COLLECTION", "movies")
EPISODES_COLLECTION = os.getenv("EPISODES_COLLECTION", "episodes")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost,http://localhost:3000").split(",")
    if origin.strip()
]
