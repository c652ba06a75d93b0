import os
from dotenv import load_dotenv

load_dotenv()


def _number(name: str, default: str, cast=float):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


# --------------------------------------------------
# App
# --------------------------------------------------
APP_NAME = "Survey Answer Consistency API"
API_PREFIX = "/v1"

ENV = os.getenv("ENV", "local")  # local | production
IS_PROD = ENV == "production"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --------------------------------------------------
# OpenAI (checked when a client is built, not here)
# --------------------------------------------------
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o-mini")
CHAT_TEMPERATURE = _number("CHAT_TEMPERATURE", "0.2")

# --------------------------------------------------
# Matching
# --------------------------------------------------
SIMILARITY_THRESHOLD = _number("SIMILARITY_THRESHOLD", "0.95")

if not -1.0 <= SIMILARITY_THRESHOLD <= 1.0:
    raise RuntimeError("SIMILARITY_THRESHOLD must be between -1 and 1")

EMBEDDING_CACHE_SIZE = _number("EMBEDDING_CACHE_SIZE", "1024", int)

if EMBEDDING_CACHE_SIZE < 0:
    raise RuntimeError("EMBEDDING_CACHE_SIZE must be >= 0")

# --------------------------------------------------
# History store
# --------------------------------------------------
HISTORY_BACKEND = os.getenv("HISTORY_BACKEND", "memory").lower()  # memory | redis | firestore

if HISTORY_BACKEND not in ("memory", "redis", "firestore"):
    raise RuntimeError("HISTORY_BACKEND must be one of: memory, redis, firestore")

if IS_PROD and HISTORY_BACKEND == "memory":
    raise RuntimeError("HISTORY_BACKEND=memory is not allowed in production")

# Redis
REDIS_URL = os.getenv("REDIS_URL")
REDIS_PREFIX = os.getenv("REDIS_PREFIX", "answers:")

# Firestore
FIRESTORE_PROJECT = os.getenv("FIRESTORE_PROJECT")
FIRESTORE_COLLECTION = os.getenv("FIRESTORE_COLLECTION", "answer_history")
