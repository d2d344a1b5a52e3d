"""
FieldVault server entry point.

Run with: python main.py
Or with uvicorn: uvicorn app:app --reload

Host and port come from FIELDVAULT_HOST and FIELDVAULT_PORT; the server log
level follows FIELDVAULT_LOG_LEVEL so uvicorn and the application agree.
"""

import os

import uvicorn

from fieldvault.config import Config


def run() -> None:
    """Start the API server."""
    config = Config.from_env()
    is_dev = os.getenv("ENVIRONMENT", "development") == "development"

    uvicorn.run(
        "app:app",
        host=os.getenv("FIELDVAULT_HOST", "127.0.0.1"),
        port=int(os.getenv("FIELDVAULT_PORT", "8000")),
        reload=is_dev,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    run()
