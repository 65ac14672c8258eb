from pydantic import BaseModel
import os
import json
from pathlib import Path
from typing import List
from dotenv import load_dotenv, dotenv_values

# config.py is in backend/farguard/, so we go up 2 levels to reach backend/
BACKEND_DIR = Path(__file__).parent.parent
ENV_FILE = BACKEND_DIR / ".env"

# Load environment variables from .env file FIRST, before any Settings initialization
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=True)
    print(f"✅ Loaded environment variables from: {ENV_FILE.absolute()}")

    env_dict = dotenv_values(ENV_FILE)
    if env_dict:
        for key, value in env_dict.items():
            if value is not None:
                os.environ.setdefault(key, value)
else:
    load_dotenv(override=False)


def _parse_key_list(raw: str) -> List[str]:
    """Parse a JSON array or comma-separated list of keys."""
    raw = (raw or "").strip()
    if not raw:
        return []
    try:
        if raw.startswith("[") and raw.endswith("]"):
            return [str(k).strip() for k in json.loads(raw) if str(k).strip()]
        return [k.strip() for k in raw.split(",") if k.strip()]
    except ValueError as e:
        print(f"⚠️  Error parsing key list: {e}, using as single key")
        return [raw]


class Settings(BaseModel):
    api_title: str = os.getenv("API_TITLE", "FarGuard Backend")
    api_version: str = os.getenv("API_VERSION", "0.1.0")
    api_debug: bool = os.getenv("API_DEBUG", "false").lower() == "true"
    cors_origins: List[str] = _parse_key_list(os.getenv("CORS_ORIGINS", "*"))

    # Explorer (Etherscan v2 multichain endpoint, chain picked by chainid)
    etherscan_api_url: str = os.getenv("ETHERSCAN_API_URL", "https://api.etherscan.io/v2/api")
    etherscan_api_key: str = os.getenv("ETHERSCAN_API_KEY", "")
    etherscan_keys: List[str] = []
    explorer_timeout: float = float(os.getenv("EXPLORER_TIMEOUT", "10.0"))
    explorer_connect_timeout: float = float(os.getenv("EXPLORER_CONNECT_TIMEOUT", "3.0"))

    # Transaction history paging
    tx_page_size: int = int(os.getenv("TX_PAGE_SIZE", "1000"))
    tx_max_pages: int = int(os.getenv("TX_MAX_PAGES", "1"))

    # Approval decoding
    resolver_concurrency: int = int(os.getenv("RESOLVER_CONCURRENCY", "4"))
    unlimited_threshold: int = int(os.getenv("UNLIMITED_THRESHOLD", str(10**18)))
    update_on_rediscovery: bool = os.getenv("UPDATE_ON_REDISCOVERY", "false").lower() == "true"

    # Persistence
    storage_backend: str = os.getenv("STORAGE_BACKEND", "memory").lower()
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./farguard.db")


settings = Settings()

# Support multiple Etherscan keys, falling back to the single key
settings.etherscan_keys = _parse_key_list(os.getenv("ETHERSCAN_KEYS", "")) or _parse_key_list(settings.etherscan_api_key)

if settings.etherscan_keys:
    print(f"✅ Loaded {len(settings.etherscan_keys)} Etherscan API key(s)")
else:
    print("⚠️  No Etherscan API key configured, explorer calls will be rate-limited")
