import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# "memory" keeps room history in-process, "redis" keeps it in Redis lists
HISTORY_BACKEND = os.getenv("HISTORY_BACKEND", "memory").lower()
HISTORY_TTL_SECONDS = int(os.getenv("HISTORY_TTL_SECONDS", 3600))

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

SENDER_LABEL = os.getenv("SENDER_LABEL", "Stranger")
WAITING_MESSAGE = os.getenv("WAITING_MESSAGE", "Looking for someone to chat with...")
