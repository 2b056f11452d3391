"""
Runtime configuration, read from the environment (and an optional .env file at the project root).
"""
import os
from pathlib import Path

from dotenv import load_dotenv

from reader_core.utils.paths import get_project_root, get_default_data_dir

env_path = get_project_root() / ".env"
load_dotenv(env_path)

DATA_DIR = Path(os.getenv("READER_DATA_DIR", str(get_default_data_dir())))
STORAGE_FILE = DATA_DIR / "storage.json"

HOST = os.getenv("READER_HOST", "127.0.0.1")
PORT = int(os.getenv("READER_PORT", "8123"))

# Seconds allowed for fetching one remote stylesheet during sanitization
STYLESHEET_TIMEOUT = float(os.getenv("READER_STYLESHEET_TIMEOUT", "10"))

LOG_LEVEL = os.getenv("READER_LOG_LEVEL", "INFO").upper()
