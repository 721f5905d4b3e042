"""
Import shim so ``uvicorn app.main:app`` serves the application defined in backend/main.py
"""
from main import app

__all__ = ["app"]
