import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE = timedelta(days=7)
# tokens with less than this left are re-issued on the next authenticated request
TOKEN_REFRESH_THRESHOLD = timedelta(days=1)
SESSION_COOKIE = "token"
NEW_TOKEN_HEADER = "New-Auth-Token"

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
APP_ENV = os.getenv("APP_ENV", "development")
IS_PRODUCTION = APP_ENV == "production"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
