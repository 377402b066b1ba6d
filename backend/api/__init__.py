"""
LocalRepo API Package.

FastAPI application serving the published archive.
Requires Python 3.11+.
"""

from api.main import create_app

__all__ = ["create_app"]
