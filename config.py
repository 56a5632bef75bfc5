import os
from datetime import timedelta

from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

MONGO_URL = os.getenv("MONGO_URL")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "slotswapdb")

# "mongo" in production, "memory" for local runs without a replica set
STORE_BACKEND = os.getenv("STORE_BACKEND", "mongo")

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

RETENTION_DAYS = int(os.getenv("RETENTION_DAYS", 30))
RETENTION_PERIOD = timedelta(days=RETENTION_DAYS)

MAX_SLOT_HOURS = int(os.getenv("MAX_SLOT_HOURS", 24))
MAX_SLOT_DURATION = timedelta(hours=MAX_SLOT_HOURS)

EXPIRING_SOON_DAYS = int(os.getenv("EXPIRING_SOON_DAYS", 3))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
