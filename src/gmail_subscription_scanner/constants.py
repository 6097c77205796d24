"""Constants for Gmail Subscription Scanner."""

from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path.home() / ".gmail-subscription-scanner"
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
DB_PATH = CONFIG_DIR / "subscriptions.db"

# --- Gmail API ---
SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
PAGE_SIZE = 100  # message IDs per list page
MAX_MESSAGES = 500  # hard ceiling per scan
FETCH_BATCH_SIZE = 10  # concurrent metadata fetches per batch
METADATA_HEADERS = ["From", "Subject", "Date"]
REQUEST_TIMEOUT = 30  # seconds per outbound call

# --- Store ---
UPSERT_BATCH_SIZE = 50

# --- Tokens ---
DEFAULT_EXPIRES_IN = 3600  # seconds, when the provider omits expires_in
REFRESH_MARGIN = 60  # refresh this many seconds before expiry

# --- Retry ---
RETRY_ATTEMPTS = 3
RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)

# --- Frequencies ---
FREQUENCY_MONTHLY = "monthly"
FREQUENCY_YEARLY = "yearly"
FREQUENCY_MONTHS = {FREQUENCY_MONTHLY: 1, FREQUENCY_YEARLY: 12}

# --- Extraction heuristics ---
# Bump HEURISTICS_VERSION whenever a table below changes so stored
# detections can be traced back to the rules that produced them.
HEURISTICS_VERSION = "2024.1"

SUBJECT_KEYWORDS = ["subscription", "payment", "receipt", "invoice", "billing"]

# Provider names searched in subjects by the Gmail query.
PROVIDER_KEYWORDS = ["netflix", "spotify", "amazon", "hbo", "disney"]

# Sender domains searched by the Gmail query.
PROVIDER_DOMAINS = [
    "netflix.com",
    "spotify.com",
    "amazon.com",
    "hbo.com",
    "youtube.com",
    "disneyplus.com",
]

# Substring of the sender domain -> provider name.  Checked in order.
PROVIDER_ALIASES = [
    ("spotify", "spotify"),
    ("netflix", "netflix"),
    ("youtube", "youtube"),
    ("amazon", "amazon"),
    ("hbo", "hbo"),
    ("disney", "disney+"),
]

# Substring of the subject -> provider name, used only when the sender
# has no usable domain.
SUBJECT_PROVIDER_ALIASES = [
    ("spotify", "spotify"),
    ("netflix", "netflix"),
    ("youtube", "youtube"),
    ("amazon prime", "amazon"),
    ("hbo", "hbo"),
    ("disney+", "disney+"),
]

# Currency symbol or code followed by an amount; group 1 is the amount.
# "1,299.99" groups thousands; "12,50" uses a decimal comma.
PRICE_PATTERN = r"(?:usd|eur|gbp|€|£|\$)\s*(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:[.,]\d{1,2})?)"

# (type, regex) pairs; the first match decides the candidate type.
TYPE_PATTERNS = [
    (
        "subscription",
        r"subscription|subscribe|membership|plan|netflix|spotify|disney\+|hbo|amazon prime|youtube|premium",
    ),
    ("recurring", r"monthly|yearly|annual|payment|recurring|billing"),
    ("price", PRICE_PATTERN),
    (
        "confirmation",
        r"your.+subscription|thank you for subscribing|subscription confirmation|payment processed",
    ),
]

YEARLY_KEYWORDS = ["yearly", "annual"]
MONTHLY_KEYWORDS = ["monthly"]
