"""
Routes package - APIRouter modules for the FastAPI app.
"""

from .search import router as search_router

__all__ = ['search_router']
