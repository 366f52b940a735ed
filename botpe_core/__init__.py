"""
BotPe AI Platform
=================

Backend core for the BotPe WhatsApp bot platform.

This package provides:
- Bot flow graph storage (nodes, edges, atomic full-graph replace)
- WhatsApp embedded signup and account linking
- Encryption of stored access tokens
- REST API endpoints
"""

__version__ = "1.0.0"
