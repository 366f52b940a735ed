"""
API Routes Module

This module provides all REST API endpoints for the platform.
"""

from .bots import router as bots_router
from .whatsapp import router as whatsapp_router


__all__ = [
    "bots_router",
    "whatsapp_router",
]
