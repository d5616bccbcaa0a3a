# Routes package __init__.py - re-exports routers for main.py convenience
from .review import router as review_router
from .sync import router as sync_router
from .offline import router as offline_router

__all__ = ['review_router', 'sync_router', 'offline_router']
