"""
asgi.py -- Application assembly for folioauth.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
