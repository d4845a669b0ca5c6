"""
Caffeine Tracker Configuration.
All settings via environment variables with sensible defaults.
"""

import os
from pathlib import Path
from types import MappingProxyType

# --- Paths ---
BASE_DIR = Path(os.getenv("CAFFEINE_DATA_DIR", "/data"))
DB_PATH = BASE_DIR / "caffeine.db"

# --- Auth ---
API_KEY = os.getenv("CAFFEINE_API_KEY", "")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Timezone ---
TIMEZONE = os.getenv("TZ", "Australia/Melbourne")

# --- Decay model ---
# Caffeine elimination half-life, healthy adult non-smoker ~4-5h
HALF_LIFE_HOURS: float = float(os.getenv("CAFFEINE_HALF_LIFE_HOURS", "4"))
# Events older than this before the window start are ignored (~18 half-lives)
LOOKBACK_HOURS: int = int(os.getenv("CAFFEINE_LOOKBACK_HOURS", "72"))

# --- Sampling ---
RANGE_RESOLUTION: int = int(os.getenv("CAFFEINE_RANGE_RESOLUTION", "250"))  # target grid points
KNOT_OFFSET_SECONDS: int = int(os.getenv("CAFFEINE_KNOT_OFFSET_SECONDS", "60"))
MAX_SAMPLES: int = int(os.getenv("CAFFEINE_MAX_SAMPLES", "0"))  # 0 = uncapped

# --- Up Bank ---
UP_API_URL = os.getenv("UP_API_URL", "https://api.up.com.au/api/v1/")
UP_ACCESS_TOKEN = os.getenv("UP_ACCESS_TOKEN", "")
UP_WEBHOOK_SECRET = os.getenv("UP_WEBHOOK_SECRET", "")
UP_TIMEOUT_SEC = float(os.getenv("UP_TIMEOUT_SEC", "10"))

# --- Classification: cafe purchases ---
# (merchant description, cost in cents) -> caffeine mg
CAFE_LOOKUP = MappingProxyType({
    ("Charlie Bit Me Cafe", 680): 160,
    ("Charlie Bit Me Cafe", 700): 160,
    ("Charlie Bit Me Cafe", 580): 80,
    ("Georgie Boy Espresso", 550): 160,
    ("Georgie Boy Espresso", 600): 160,
    ("Chia Chia", 550): 160,
    ("Chia Chia", 540): 160,
    ("Chia Chia", 500): 80,
    ("Chia Chia", 590): 240,
    ("In a Rush", 560): 160,
    ("Mr Summit", 550): 160,
    ("The Other Brother", 600): 160,
})

# --- Classification: grocery capsules ---
GROCERY_MERCHANT_KEYWORDS = ("WOOLWORTHS", "DOCK")
GROCERY_MIN_CENTS = 200
GROCERY_MAX_CENTS = 700
GROCERY_DESCRIPTION = "Dare NAS Intense Espresso"
GROCERY_CAFFEINE_MG = 260

# --- Predefined drinks (dashboard quick buttons) ---
# type -> (description, caffeine mg, cost in cents)
PREDEFINED_EVENTS = MappingProxyType({
    1: ("Homemade Double Oat Latte", 160, 250),
    2: ("The Jolly Miller", 80, 600),
})
