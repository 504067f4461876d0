"""
Application configuration, read once from the environment at startup.
A .env file in the working directory is honoured.
"""

import os

from dotenv import load_dotenv

load_dotenv()

DB_PATH = os.getenv("ORDERMGR_DB_PATH", "data/store.sqlite")

# empty -> remote disabled, local store only
API_BASE_URL = os.getenv("ORDERMGR_API_BASE_URL", "").strip()
API_TIMEOUT = float(os.getenv("ORDERMGR_API_TIMEOUT", "10"))

ADMIN_USERNAME = os.getenv("ORDERMGR_ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ORDERMGR_ADMIN_PASSWORD", "password")

# confirmation for deleting orders, not an auth boundary
DELETE_PASSWORD = os.getenv("ORDERMGR_DELETE_PASSWORD", "password")

EXPORT_DIR = os.getenv("ORDERMGR_EXPORT_DIR", "exports")

DEBUG = bool(os.getenv("DEBUG"))
LOG_LEVEL = os.getenv("ORDERMGR_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("ORDERMGR_LOG_FILE", "")
