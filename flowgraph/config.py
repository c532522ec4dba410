"""Service configuration constants: single source of truth for server env vars."""

import os
from pathlib import Path

# Server binding, used by `python -m app` / uvicorn
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# CORS: comma-separated origins of the workflow editor
_default_origins = "http://localhost:3000,http://127.0.0.1:3000"
CORS_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ORIGINS", _default_origins).split(",") if o.strip()
]

# Log directory, configurable via LOG_DIR env var for Docker
LOG_DIR = Path(os.getenv("LOG_DIR", str(Path(__file__).parent.parent / "logs")))

# Level for the flowgraph and api loggers (DEBUG shows traversal and spacing detail)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
