import uvicorn
import os

# app configures logging on import
from app import app
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    reload = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")
    logger.info(f"Starting PairChat server on {host}:{port}")
    # reload needs an import string so the worker can re-import the app
    uvicorn.run("app:app" if reload else app, host=host, port=port, reload=reload)
