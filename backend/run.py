"""Run the API server with environment loaded from .env"""
import os
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(BACKEND_DIR))

from dotenv import load_dotenv

load_dotenv(BACKEND_DIR.parent / ".env", override=False)

os.chdir(BACKEND_DIR)

if __name__ == "__main__":
    import uvicorn

    from app.core.config import get_settings
    from main import app

    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, reload=False)
