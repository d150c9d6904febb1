import os
from dotenv import load_dotenv

load_dotenv()

# --------------------------------------------------
# App
# --------------------------------------------------
APP_NAME = "BrightData Webhook Relay"
API_PREFIX = "/v1"

ENV = os.getenv("ENV", "local")  # local | production
IS_PROD = ENV == "production"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --------------------------------------------------
# BrightData
# --------------------------------------------------
BRIGHTDATA_API_KEY = os.getenv("BRIGHTDATA_API_KEY", "")
BRIGHTDATA_BASE_URL = os.getenv("BRIGHTDATA_BASE_URL", "https://api.brightdata.com")

BRIGHTDATA_DATASET_ID = os.getenv("BRIGHTDATA_DATASET_ID", "")
BRIGHTDATA_COMPANY_DATASET_ID = os.getenv(
    "BRIGHTDATA_COMPANY_DATASET_ID", BRIGHTDATA_DATASET_ID
)

INDEED_DATASET_ID = os.getenv("INDEED_DATASET_ID", "")
INDEED_API_KEY = os.getenv("INDEED_API_KEY", BRIGHTDATA_API_KEY)

if IS_PROD and not BRIGHTDATA_API_KEY:
    raise RuntimeError("BRIGHTDATA_API_KEY is required in production")

# Upstream job acceptance can be slow; this is not a completion timeout
TRIGGER_TIMEOUT_SECONDS = int(os.getenv("TRIGGER_TIMEOUT_SECONDS", 60 * 60))
LIMIT_PER_INPUT = int(os.getenv("LIMIT_PER_INPUT", 2))

DEFAULT_KEYWORD = os.getenv("DEFAULT_KEYWORD", "public health jobs")
DEFAULT_LOCATION = os.getenv("DEFAULT_LOCATION", "Chennai")
DEFAULT_COUNTRY = os.getenv("DEFAULT_COUNTRY", "IN")

# --------------------------------------------------
# Webhook
# --------------------------------------------------
WEBHOOK_URL = os.getenv("WEBHOOK_URL", f"http://localhost:8000{API_PREFIX}/webhook")

# Empty secret → every caller is accepted
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET") or BRIGHTDATA_API_KEY

# --------------------------------------------------
# Firestore (OPTIONAL locally)
# --------------------------------------------------
FIRESTORE_PROJECT = os.getenv("FIRESTORE_PROJECT")

if IS_PROD and not FIRESTORE_PROJECT:
    raise RuntimeError("FIRESTORE_PROJECT is required in production")

# In local/dev → JobRepo disables itself and webhooks are kept on disk only

# --------------------------------------------------
# Local backup
# --------------------------------------------------
OUTPUT_DIR = os.getenv("OUTPUT_DIR", os.path.join(os.getcwd(), "output"))
