import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[1] / ".env")
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

try:
    from backend.kiatere.server import create_app
except ImportError:  # pragma: no cover
    from kiatere.server import create_app

# Serve with a single worker: rooms live in this process.
app, socketio = create_app()
