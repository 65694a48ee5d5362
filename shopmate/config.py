# shopmate/config.py
import os

from dotenv import load_dotenv

load_dotenv()

TIMEOUT = 10.0
USER_AGENT = "Mozilla/5.0 (compatible; ShopMate/1.0; +https://example.com/bot)"

# upstream storefront contract
PAGE_SIZE = 250
PRODUCTS_PATH = "/products.json"
COLLECTIONS_PATH = "/collections.json"
COLLECTION_PRODUCTS_PATH = "/collections/{handle}/products.json"

# anonymous callers only get a taste of the catalog
ANON_MAX_PRODUCT_PAGES = 1
ANON_MAX_COLLECTIONS = 250

DATA_DIR = os.getenv("SHOPMATE_DATA_DIR", "data")
LOG_LEVEL = os.getenv("SHOPMATE_LOG_LEVEL", "INFO")

# auth
AUTH_SECRET = os.getenv("AUTH_SECRET", "dev-secret")
COOKIE_NAME = "session"
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", str(60 * 60 * 24 * 30)))

# legacy session-id scrape path
SCRAPE_SESSION_TTL = float(os.getenv("SCRAPE_SESSION_TTL", "3600"))

# client-side snapshot cache
SCHEMA_VERSION = 3
CLIENT_CACHE_PATH = os.getenv("SHOPMATE_CLIENT_CACHE", os.path.join(DATA_DIR, "client-cache.sqlite3"))

# console listing
CONSOLE_PAGE_LIMIT = 100
CONSOLE_MAX_COLLECTIONS = 100
