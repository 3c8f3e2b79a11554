"""
API Routers
Separate router modules for each domain.
"""

from app.routers import cargo

__all__ = ["cargo"]
