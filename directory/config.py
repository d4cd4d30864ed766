"""
Runtime configuration.

Reads overrides from the environment (and a local .env file, if present) and
exposes them as module constants. Everything else in the project imports its
paths and limits from here.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

ROOT_DIR = Path(__file__).parent.parent

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

DATA_DIR       = Path(os.getenv("EDUDIR_DATA_DIR", str(ROOT_DIR / "data")))
DB_PATH        = Path(os.getenv("EDUDIR_DB_PATH", str(DATA_DIR / "directory.db")))
SELECTION_PATH = Path(os.getenv("EDUDIR_SELECTION_PATH", str(DATA_DIR / "selection.json")))
LOG_DIR        = Path(os.getenv("EDUDIR_LOG_DIR", str(ROOT_DIR / "logs")))

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

HOST = os.getenv("EDUDIR_HOST", "0.0.0.0")
PORT = int(os.getenv("EDUDIR_PORT", "8000"))

# ---------------------------------------------------------------------------
# Query / detail limits
# ---------------------------------------------------------------------------

DEFAULT_PAGE        = 1
DEFAULT_LIMIT       = 12
DETAIL_COURSE_LIMIT = 10
DETAIL_REVIEW_LIMIT = 5

# ---------------------------------------------------------------------------
# Selection sets
# ---------------------------------------------------------------------------

COMPARE_CAPACITY = 4
FAVORITES_KEY    = "favorites"
COMPARE_KEY      = "compareItems"
