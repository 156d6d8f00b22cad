"""
ELP Green: Configuration & Constants
All environment variables, feature flags, external endpoints, and authority matrix.
"""
import os
from pathlib import Path

# ============================================================
# PATHS
# ============================================================
BASE_DIR = Path(__file__).parent.parent.parent
PACKAGE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.environ.get("ELP_DATA_DIR", str(BASE_DIR / "data")))
REPORTS_DIR = DATA_DIR / "reports"

for d in (DATA_DIR, REPORTS_DIR):
    d.mkdir(parents=True, exist_ok=True)

DB_PATH = DATA_DIR / "db.json"
USE_REAL_API = bool(os.environ.get("ANTHROPIC_API_KEY"))

# ============================================================
# FEATURE FLAGS
# ============================================================
PERSIST_DATA = os.environ.get("PERSIST_DATA", "true").lower() == "true"
RESET_ON_START = os.environ.get("RESET_ON_START", "false").lower() == "true"
RATE_LIMIT_ENABLED = os.environ.get("RATE_LIMIT_ENABLED", "true").lower() == "true"

# ============================================================
# AUTH
# ============================================================
JWT_SECRET = os.environ.get("JWT_SECRET", os.urandom(32).hex())
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = 72
AUTH_ENABLED = os.environ.get("AUTH_ENABLED", "true").lower() == "true"

# ============================================================
# AUTHORITY MATRIX
# ============================================================
AUTHORITY_MATRIX = {
    "viewer": {"title": "Viewer", "level": 1},
    "editor": {"title": "Editor", "level": 2},
    "admin":  {"title": "Administrator", "level": 3},
}
DEFAULT_ROLE = "viewer"

# ============================================================
# AI MODELS
# ============================================================
PRIMARY_MODEL = "claude-sonnet-4-20250514"
FAST_MODEL = "claude-haiku-4-5-20251001"
AI_TIMEOUT_SECONDS = 90
MARKET_TEXT_MAX_CHARS = 140000

# ============================================================
# EXTERNAL SERVICES
# ============================================================
OPENSANCTIONS_API = os.environ.get("OPENSANCTIONS_API", "https://api.opensanctions.org")
OPENSANCTIONS_API_KEY = os.environ.get("OPENSANCTIONS_API_KEY")
BRASIL_API_CNPJ = "https://brasilapi.com.br/api/cnpj/v1"
CGU_API = "https://api.portaldatransparencia.gov.br/api-de-dados"
CGU_API_KEY = os.environ.get("CGU_API_KEY")
VOYAGE_API_KEY = os.environ.get("VOYAGE_API_KEY")
VOYAGE_MODEL = "voyage-3-lite"
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "15"))
SCREENING_USER_AGENT = "ELP-Green-AML-Screening/1.0"

SITE_URL = os.environ.get("SITE_URL", "https://www.elpgreen.com")
EMAIL_FROM = os.environ.get("EMAIL_FROM", "ELP Alliance <noreply@elpgreen.com>")
ADMIN_NOTIFY_EMAIL = os.environ.get("ADMIN_NOTIFY_EMAIL", "info@elpgreen.com")

# ============================================================
# CURRENCY
# ============================================================
CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "BRL": "R$", "AUD": "A$", "CLP": "CLP$",
                    "MXN": "MX$", "CNY": "¥", "INR": "₹", "ZAR": "R", "CAD": "C$"}


def currency_symbol(code: str) -> str:
    return CURRENCY_SYMBOLS.get(code, code + " ")

# ============================================================
# VERSION
# ============================================================
VERSION = "1.4.0"
PRODUCT_NAME = "ELP Green Technology"
