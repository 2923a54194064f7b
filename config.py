from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv()

BASE_DIR = Path(__file__).parent

# Data directory (gitignored)
DATA_DIR = BASE_DIR / "data"
DATA_DIR.mkdir(exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR}/rail.db")

# Static train / station dataset (CSV files shipped with the repo)
STATIC_DATA_DIR: Path = Path(os.getenv("STATIC_DATA_DIR", str(BASE_DIR / "ingestion" / "data")))

# Fares (LKR, added per passenger)
SERVICE_FEE: float = float(os.getenv("SERVICE_FEE", "100"))
TAX_FEE: float = float(os.getenv("TAX_FEE", "50"))

# Bookings
MAX_PASSENGERS: int = int(os.getenv("MAX_PASSENGERS", "5"))

# Display
DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "LKR")
MAX_RECENT_SEARCHES: int = int(os.getenv("MAX_RECENT_SEARCHES", "5"))

# Tracking
LOCATION_REFRESH_SECONDS: int = int(os.getenv("LOCATION_REFRESH_SECONDS", "30"))
# Reject out-of-range progress values instead of clamping them
STRICT_PROGRESS: bool = os.getenv("STRICT_PROGRESS", "false").lower() in ("1", "true", "yes")

# API
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
]
INGEST_API_KEY: str = os.getenv("INGEST_API_KEY", "")
