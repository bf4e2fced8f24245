import os

from dotenv import load_dotenv

load_dotenv()

# =========================
# ENV / CONFIG
# =========================
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()

SOCKET_URL = os.getenv("SOCKET_URL", "").strip()
SOCKET_API_KEY = os.getenv("SOCKET_API_KEY", "").strip()

DB_PATH = os.getenv("DB_PATH", "subscriptions.db").strip()

COIN_DATA_URL = os.getenv("COIN_DATA_URL", "https://data.pumpmod.live/coin/{mint}").strip()
PUMPFUN_COIN_URL = os.getenv("PUMPFUN_COIN_URL", "https://pump.fun/coin/{mint}").strip()

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
TG_LONGPOLL_TIMEOUT = int(os.getenv("TG_LONGPOLL_TIMEOUT", "30"))
TG_LONGPOLL_GRACE = int(os.getenv("TG_LONGPOLL_GRACE", "15"))

FEED_RECONNECT_MAX_SECONDS = float(os.getenv("FEED_RECONNECT_MAX_SECONDS", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# default values offered by the /notify menu
DEFAULT_THRESHOLD_PERCENT = 10
