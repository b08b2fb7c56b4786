import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./irepair.db")

# Civil timezone used to decide "which weekday" and "what time" a booking falls on
CIVIL_TIMEZONE = os.getenv("CIVIL_TIMEZONE", "Asia/Manila")

# Technicians farther than this from the user are never offered
MAX_MATCH_DISTANCE_KM = float(os.getenv("MAX_MATCH_DISTANCE_KM", "20"))

# Cancel deadline sits this many minutes before the scheduled time (2h25m)
CANCEL_DEADLINE_MINUTES = int(os.getenv("CANCEL_DEADLINE_MINUTES", "145"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
