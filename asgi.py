"""
asgi.py -- Application assembly for the blog backend.

The only place get_settings() meets create_app(): the process configuration
is read once here and passed down explicitly to every component.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app
from core.config import get_settings

app = create_app(get_settings())
